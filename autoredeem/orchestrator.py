"""
Drives a single code through check, redeem and record.

Every outcome is written to the ledger before redeem_one returns, except
for login-level failures, which say nothing about the code itself.
"""

from typing import List, Optional

import requests

from .classifier import classify, status_label
from .client import ShiftClient
from .errors import NetworkError, NotAuthenticated, ShiftError, wrap_request_error
from .log import Colors, log_code, log_debug, log_error
from .models import (
    OutcomeKind,
    RedeemedCodeRecord,
    RedeemResult,
    RedemptionForm,
    RedemptionOutcome,
    utcnow,
)
from .storage import RedemptionLedger

DEFAULT_INVALID_REASON = "Code not valid"
NO_ALLOWED_SERVICES_REASON = "Code not available for configured services"
NO_PLATFORM_REASON = "Failed to redeem on any platform"


class Redeemer:
    """Redemption orchestrator for one code at a time"""

    def __init__(self, client: ShiftClient, ledger: RedemptionLedger,
                 allowed_services: Optional[List[str]] = None):
        self.client = client
        self.ledger = ledger
        self.allowed_services = list(allowed_services or [])

    def redeem_one(self, code: str, is_retry: bool = False) -> RedemptionOutcome:
        """Check and redeem a code on every platform it offers"""
        if is_retry:
            self.ledger.remove_failed(code)

        try:
            return self._redeem(code)
        except NotAuthenticated as e:
            return RedemptionOutcome(code=code, success=False, message=e.message)
        except ShiftError as e:
            log_error(f"Redemption of {code} failed: {e.message}")
            return self._record_failure(code, e.message, classified=not isinstance(e, NetworkError))
        except requests.RequestException as e:
            error = wrap_request_error(e, f"redemption of {code}")
            log_error(f"Redemption of {code} failed: {error.message}")
            return self._record_failure(code, error.message, classified=not isinstance(error, NetworkError))

    def _redeem(self, code: str) -> RedemptionOutcome:
        check = self.client.check_code(code)

        if isinstance(check.error, NotAuthenticated):
            return RedemptionOutcome(code=code, success=False, message=check.reason or check.error.message)

        # Transport failures say nothing about the code; their text is not a site message
        if isinstance(check.error, NetworkError):
            return self._record_failure(code, check.reason or check.error.message, classified=False)

        if not check.valid or not check.forms:
            return self._record_failure(code, check.reason or DEFAULT_INVALID_REASON)

        forms = self._filter_forms(check.forms)
        if not forms:
            log_code(code, "skipped", NO_ALLOWED_SERVICES_REASON, Colors.YELLOW)
            return self._record_failure(code, NO_ALLOWED_SERVICES_REASON, classified=False)

        return self._redeem_forms(code, forms)

    def _filter_forms(self, forms: List[RedemptionForm]) -> List[RedemptionForm]:
        if not self.allowed_services:
            return list(forms)
        return [form for form in forms if form.service in self.allowed_services]

    def _redeem_forms(self, code: str, forms: List[RedemptionForm]) -> RedemptionOutcome:
        redeemed_on = []
        failures = []
        saw_expired = False

        for form in forms:
            result = self.client.redeem_code(form)
            if result.success:
                redeemed_on.append(f"{form.game} ({form.platform})")
                self.ledger.add_history(RedeemedCodeRecord(
                    code=code,
                    redeemed_at=utcnow(),
                    game=result.game or form.game,
                    platform=result.platform or form.platform,
                ))
                log_code(code, "redeemed", f"{form.game} on {form.platform}", Colors.GREEN)
                continue

            failures.append(result)
            if result.error is None and result.reason and "expired" in result.reason.lower():
                saw_expired = True
            log_debug(f"Redemption of {code} on {form.platform} failed: {result.reason}")

        if redeemed_on:
            self.ledger.remove_failed(code)
            return RedemptionOutcome(code=code, success=True, message=f"Redeemed on: {', '.join(redeemed_on)}")

        if saw_expired:
            self.ledger.mark_redeemed(code)
            log_code(code, status_label(OutcomeKind.EXPIRED), "", Colors.YELLOW)
            return RedemptionOutcome(code=code, success=False, message="Code expired", expired=True,
                                     kind=OutcomeKind.EXPIRED)

        # Every platform failed server-side
        if failures and all(self._is_server_failure(result) for result in failures):
            return self._record_failure(code, failures[-1].reason)

        return self._record_failure(code, NO_PLATFORM_REASON, classified=False)

    @staticmethod
    def _is_server_failure(result: RedeemResult) -> bool:
        if isinstance(result.error, NetworkError) or not result.reason:
            return False
        return classify(result.reason) is OutcomeKind.SERVER_ERROR

    def _record_failure(self, code: str, reason: str, classified: bool = True) -> RedemptionOutcome:
        """Persist a non-success outcome according to its kind"""
        kind = classify(reason) if classified else OutcomeKind.FAILED

        if kind in (OutcomeKind.EXPIRED, OutcomeKind.ALREADY_REDEEMED):
            self.ledger.mark_redeemed(code)
            log_code(code, status_label(kind), reason, Colors.YELLOW)
            return RedemptionOutcome(code=code, success=False, message=reason,
                                     expired=kind is OutcomeKind.EXPIRED, kind=kind)

        self.ledger.add_failed(code, reason)
        log_code(code, status_label(kind), reason, Colors.RED)
        return RedemptionOutcome(code=code, success=False, message=reason,
                                 server_error=kind is OutcomeKind.SERVER_ERROR, kind=kind)
