"""
Background auto-redeem scheduler.

The next run time is persisted in the ledger, so a process that was down
when a run came due performs exactly one catch-up run on its first tick and
then goes back to the regular interval.
"""

import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .client import ShiftClient
from .errors import ShiftError
from .feed import FeedClient
from .lock import RedemptionGuard
from .log import log_debug, log_error, log_info, log_section, log_success, log_warning
from .models import UserConfig, utcnow
from .notify import Notifier
from .runner import BatchRunner
from .storage import RedemptionLedger


class AutoRedeemScheduler:
    """Runs redemption sweeps whenever the persisted next-run time is due"""

    def __init__(self, client: ShiftClient, ledger: RedemptionLedger, feed: FeedClient,
                 runner: BatchRunner, guard: RedemptionGuard, notifier: Notifier,
                 load_user_config: Callable[[], UserConfig], poll_seconds: float = 30.0,
                 clock: Callable[[], datetime] = utcnow):
        self.client = client
        self.ledger = ledger
        self.feed = feed
        self.runner = runner
        self.guard = guard
        self.notifier = notifier
        self.load_user_config = load_user_config
        self.poll_seconds = poll_seconds
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def is_due(self, now: Optional[datetime] = None) -> bool:
        next_run = self.ledger.next_auto_redeem_at()
        return next_run is None or (now or self._clock()) >= next_run

    def tick(self, now: Optional[datetime] = None) -> Optional[List[Dict[str, Any]]]:
        """Run one sweep if due; returns the run results, or None when nothing ran"""
        user_config = self.load_user_config()
        if not user_config.auto_redeem:
            self.ledger.set_next_auto_redeem_at(None)
            return None

        if not self.is_due(now):
            return None

        with self.guard.hold() as acquired:
            if not acquired:
                # Stay due; the next tick tries again
                log_debug("Auto-redeem skipped, a redemption run is already in progress")
                return None

            try:
                return self._run_cycle(user_config)
            finally:
                self._reschedule(user_config)

    def _reschedule(self, user_config: UserConfig):
        interval = user_config.check_interval_minutes or 60
        next_run = self._clock() + timedelta(minutes=interval)
        self.ledger.set_next_auto_redeem_at(next_run)
        log_info(f"Next auto-redeem check in {interval} minutes")

    def _run_cycle(self, user_config: UserConfig) -> List[Dict[str, Any]]:
        log_section("Auto-redeem cycle", show_time=True)

        if not self.client.is_authenticated():
            log_warning("Auto-redeem skipped, not logged in to SHiFT")
            if user_config.notify_on_auto_redeem:
                self._safe_notify(self.notifier.authentication_failed, "Session missing or expired")
            return []

        if not self.client.check_connectivity():
            log_warning("Auto-redeem skipped, SHiFT is unreachable")
            return []

        try:
            fetched = self.feed.fetch_available_codes(user_config.games)
        except ShiftError as e:
            log_error(f"Auto-redeem aborted, could not fetch codes: {e.message}")
            return []

        codes = [code.code for code in fetched.available]
        if not codes:
            log_info("No new codes found")
            return []

        log_info(f"Found {len(codes)} codes to redeem")
        if user_config.notify_on_auto_redeem:
            self._safe_notify(self.notifier.notify, "Auto-Redeem",
                              f"Starting redemption of {len(codes)} SHiFT codes...")

        results = self.runner.run(codes, cancel=self._stop_event)

        success_count = sum(1 for r in results if r["success"])
        log_success(f"Auto-redeem cycle complete: {success_count}/{len(codes)} codes redeemed")
        if user_config.notify_on_auto_redeem:
            self._safe_notify(self.notifier.notify, "Auto-Redeem Complete",
                              f"Redeemed {success_count}/{len(codes)} codes successfully.")
            self._safe_notify(self.notifier.codes_redeemed_report, results)
        return results

    @staticmethod
    def _safe_notify(send: Callable[..., Any], *args):
        try:
            send(*args)
        except Exception as e:
            log_warning(f"Notification failed: {e}")

    # -------------------------------
    # Background thread
    # -------------------------------

    def start(self):
        """Start polling in a daemon thread"""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="autoredeem-scheduler", daemon=True)
        self._thread.start()
        log_info(f"Auto-redeem scheduler started (polling every {self.poll_seconds:.0f}s)")

    def stop(self, timeout: Optional[float] = None):
        """Cancel any in-flight run after its current code and wait for the thread"""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def wait(self):
        """Block until stop() is called or the thread exits"""
        thread = self._thread
        while thread is not None and thread.is_alive():
            thread.join(1.0)

    def _loop(self):
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                log_error(f"Error in auto-redeem cycle: {e}")
            self._stop_event.wait(self.poll_seconds)
