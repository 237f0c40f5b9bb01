"""Sequential redemption loop shared by manual and scheduled runs."""

import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

from .log import log_error, log_info, log_warning
from .models import ProgressEvent, ProgressStatus
from .orchestrator import Redeemer
from .progress import ProgressBus

CONNECTION_LOST = "Connection lost"


class BatchRunner:
    """Redeems codes one after another, reporting progress

    Callers are expected to hold the RedemptionGuard for the whole run.
    """

    def __init__(self, redeemer: Redeemer, progress: ProgressBus,
                 is_online: Optional[Callable[[], bool]] = None):
        self.redeemer = redeemer
        self.progress = progress
        self.is_online = is_online or (lambda: True)

    def run(self, codes: Sequence[str], cancel: Optional[threading.Event] = None,
            retry: bool = False) -> List[Dict[str, Any]]:
        """Redeem each code in order and return one result dict per code attempted"""
        codes = list(codes)
        total = len(codes)
        results: List[Dict[str, Any]] = []

        self.progress.emit(ProgressEvent(current=0, total=total, status=ProgressStatus.CHECKING))

        for index, code in enumerate(codes):
            if cancel is not None and cancel.is_set():
                log_warning(f"Run cancelled after {index}/{total} codes")
                break

            if not self.is_online():
                log_error("Network connection lost, stopping run")
                for remaining in codes[index:]:
                    results.append({"code": remaining, "success": False, "message": CONNECTION_LOST})
                self.progress.emit(ProgressEvent(current=index, total=total, status=ProgressStatus.ERROR,
                                                 results=list(results)))
                return results

            self.progress.emit(ProgressEvent(current=index + 1, total=total, status=ProgressStatus.REDEEMING,
                                             results=list(results), current_code=code))
            log_info(f"[{index + 1}/{total}] Redeeming {code}")

            try:
                outcome = self.redeemer.redeem_one(code, is_retry=retry)
                results.append(outcome.as_result())
            except Exception as e:
                log_error(f"Unexpected error redeeming {code}: {e}")
                results.append({"code": code, "success": False, "message": str(e) or "Unknown error"})

        self.progress.emit(ProgressEvent(current=len(results), total=total, status=ProgressStatus.DONE,
                                         results=list(results)))
        return results
