"""Application wiring: one object owning the client, the ledger and the scheduler."""

import threading
from typing import Any, Dict, List, Optional

import requests

from .client import ShiftClient
from .config import Config
from .errors import NotAuthenticated
from .feed import FeedClient
from .lock import RedemptionGuard
from .log import log_info, log_warning
from .models import LoginResult, RedemptionOutcome, UserConfig, is_valid_code
from .notify import Notifier, build_notifier
from .orchestrator import Redeemer
from .progress import ProgressBus
from .runner import BatchRunner
from .scheduler import AutoRedeemScheduler
from .storage import KeyValueStore, RedemptionLedger, SQLiteStore

RUN_IN_PROGRESS = "A redemption run is already in progress"


class AutoRedeemApp:
    """Entry point used by the CLI; everything is injectable for tests"""

    def __init__(self, config: Config, store: Optional[KeyValueStore] = None,
                 client: Optional[ShiftClient] = None, feed_http: Optional[requests.Session] = None,
                 notifier: Optional[Notifier] = None):
        self.config = config
        self.store = store if store is not None else SQLiteStore(config.db_path)
        self.ledger = RedemptionLedger(self.store)
        self.client = client or ShiftClient(config)
        self.guard = RedemptionGuard()
        self.progress = ProgressBus()
        self.notifier = notifier or build_notifier(config.discord_webhook_url)

        self.redeemer = Redeemer(self.client, self.ledger, allowed_services=config.allowed_services)
        self.runner = BatchRunner(self.redeemer, self.progress, is_online=self.client.check_connectivity)
        self.feed = FeedClient(config.feed_url, self.ledger, http=feed_http, timeout=config.timeout)
        self.scheduler = AutoRedeemScheduler(
            client=self.client,
            ledger=self.ledger,
            feed=self.feed,
            runner=self.runner,
            guard=self.guard,
            notifier=self.notifier,
            load_user_config=self.user_config,
            poll_seconds=config.poll_seconds,
        )

        self.restore_session()

    # -------------------------------
    # Session
    # -------------------------------

    def restore_session(self) -> bool:
        """Adopt the persisted session if it has not expired"""
        session = self.ledger.load_session()
        if session is None:
            return False
        if session.is_expired():
            log_warning("Stored SHiFT session has expired, please log in again")
            return False
        self.client.set_session(session)
        log_info("Restored SHiFT session")
        return True

    def login(self, email: Optional[str] = None, password: Optional[str] = None) -> LoginResult:
        email = email or self.config.email
        password = password or self.config.password
        if not email or not password:
            return LoginResult(success=False, error=NotAuthenticated(
                "No credentials configured",
                user_message="Set SHIFT_EMAIL and SHIFT_PASSWORD to log in.",
            ))

        result = self.client.login(email, password)
        if result.success:
            self.ledger.save_session(result.session)
        return result

    def logout(self):
        self.client.clear_session()
        self.ledger.clear_session()

    # -------------------------------
    # Preferences
    # -------------------------------

    def default_user_config(self) -> UserConfig:
        return UserConfig(
            games=self.config.allowed_games,
            auto_redeem=self.config.auto_redeem,
            check_interval_minutes=self.config.check_interval_minutes,
            notify_on_auto_redeem=self.config.notify_on_auto_redeem,
        )

    def user_config(self) -> UserConfig:
        return self.ledger.load_user_config(self.default_user_config())

    def save_user_config(self, user_config: UserConfig):
        self.ledger.save_user_config(user_config)
        if not user_config.auto_redeem:
            self.ledger.set_next_auto_redeem_at(None)

    # -------------------------------
    # Redemption
    # -------------------------------

    def redeem_all(self, cancel: Optional[threading.Event] = None) -> Optional[List[Dict[str, Any]]]:
        """Redeem every available feed code; None when another run holds the guard"""
        with self.guard.hold() as acquired:
            if not acquired:
                log_warning(RUN_IN_PROGRESS)
                return None

            if not self.client.is_authenticated():
                raise NotAuthenticated("Not authenticated")

            # Listeners see the previous run cleared before the new one starts
            self.progress.reset()
            fetched = self.feed.fetch_available_codes(self.user_config().games)
            codes = [code.code for code in fetched.available]
            if not codes:
                log_info("No new codes found")
                return []

            log_info(f"Found {len(codes)} codes to redeem")
            return self.runner.run(codes, cancel=cancel)

    def redeem_single(self, code: str, retry: bool = False) -> RedemptionOutcome:
        """Redeem one code, optionally as a retry of a failed one"""
        code = code.strip().upper()
        if not is_valid_code(code):
            return RedemptionOutcome(code=code, success=False, message="Malformed SHiFT code")

        with self.guard.hold() as acquired:
            if not acquired:
                return RedemptionOutcome(code=code, success=False, message=RUN_IN_PROGRESS)
            return self.redeemer.redeem_one(code, is_retry=retry)

    def clear_failed(self) -> int:
        return self.ledger.clear_failed()

    # -------------------------------
    # Status and scheduling
    # -------------------------------

    def status(self) -> Dict[str, Any]:
        session = self.client.session
        return {
            "authenticated": self.client.is_authenticated(),
            "session_expires_at": session.expires_at if session else None,
            "redeemed_count": len(self.ledger.redeemed_codes()),
            "failed": list(self.ledger.failed_codes().values()),
            "history": self.ledger.history()[:10],
            "next_auto_redeem_at": self.ledger.next_auto_redeem_at(),
            "in_progress": self.guard.in_progress,
            "user_config": self.user_config(),
        }

    def start_scheduler(self):
        self.scheduler.start()

    def shutdown(self):
        self.scheduler.stop(timeout=5.0)
