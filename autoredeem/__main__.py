"""Command-line entry point."""

import sys
import threading
import traceback
from typing import List, Optional

from . import __version__
from .app import AutoRedeemApp
from .classifier import classify, status_label
from .config import load_config
from .errors import ShiftError, user_message
from .log import Colors, log, log_error, log_info, log_section, log_success, log_warning, setup_logging

USAGE = """SHiFT Code Auto-Redeem - Usage:
  autoredeem                    # Redeem all available codes once
  autoredeem --login            # Log in with SHIFT_EMAIL / SHIFT_PASSWORD
  autoredeem --logout           # Forget the stored session
  autoredeem --redeem CODE      # Redeem a single code
  autoredeem --retry CODE       # Retry a previously failed code
  autoredeem --redeem-all       # Redeem all available codes once
  autoredeem --daemon           # Run the auto-redeem scheduler
  autoredeem --status           # Show session, ledger and schedule
  autoredeem --clear-failed     # Forget all failed codes
  autoredeem --debug            # Save unexpected HTML responses
  autoredeem --help             # Show this help"""


def _flag_value(argv: List[str], flag: str) -> Optional[str]:
    index = argv.index(flag)
    if index + 1 >= len(argv) or argv[index + 1].startswith("--"):
        return None
    return argv[index + 1]


def _run_cancellable(app: AutoRedeemApp):
    """Run redeem_all in a worker so Ctrl-C stops after the in-flight code"""
    cancel = threading.Event()
    outcome = {}

    def work():
        try:
            outcome["results"] = app.redeem_all(cancel=cancel)
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=work, name="autoredeem-run", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.5)
    except KeyboardInterrupt:
        log_warning("Interrupted by user, finishing the current code...")
        cancel.set()
        worker.join()

    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("results")


def _print_results(results):
    if results is None:
        log_warning("Skipped: a redemption run is already in progress")
        return
    success_count = sum(1 for r in results if r["success"])
    for result in results:
        color = Colors.GREEN if result["success"] else Colors.YELLOW
        log(f"  {result['code']}: {result['message']}", color)
    log_success(f"Redeemed {success_count}/{len(results)} codes")


def _print_status(app: AutoRedeemApp):
    status = app.status()
    log_section("Status")
    if status["authenticated"]:
        log_info(f"Logged in (session valid until {status['session_expires_at']:%Y-%m-%d})")
    else:
        log_warning("Not logged in")
    log_info(f"Redeemed codes: {status['redeemed_count']}")
    log_info(f"Failed codes: {len(status['failed'])}")
    for record in status["failed"]:
        label = status_label(classify(record.reason))
        log(f"  {record.code}: {record.reason} [{label}, attempts: {record.attempt_count}]", Colors.YELLOW)
    next_run = status["next_auto_redeem_at"]
    log_info(f"Next auto-redeem: {next_run.isoformat() if next_run else 'not scheduled'}")
    for entry in status["history"]:
        log(f"  {entry.redeemed_at:%Y-%m-%d %H:%M} {entry.code} {entry.game} ({entry.platform})", Colors.GRAY)


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point"""
    argv = sys.argv[1:] if argv is None else argv

    if "--help" in argv or "-h" in argv:
        print(USAGE)
        return 0

    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    if "--debug" in argv:
        config.debug = True
        config.verbose = True
    setup_logging(verbose=config.verbose)
    log_section(f"SHiFT Auto-Redeem v{__version__}", show_time=True)

    try:
        app = AutoRedeemApp(config)

        if "--login" in argv:
            result = app.login()
            if not result.success:
                log_error(f"Login failed: {result.message}")
                return 1
            log_success("Logged in to SHiFT")
            return 0

        if "--logout" in argv:
            app.logout()
            log_success("Logged out of SHiFT")
            return 0

        if "--status" in argv:
            _print_status(app)
            return 0

        if "--clear-failed" in argv:
            cleared = app.clear_failed()
            log_success(f"Cleared {cleared} failed codes")
            return 0

        for flag, retry in (("--redeem", False), ("--retry", True)):
            if flag in argv:
                code = _flag_value(argv, flag)
                if not code:
                    log_error(f"{flag} requires a code")
                    return 2
                outcome = app.redeem_single(code, retry=retry)
                if outcome.success:
                    log_success(f"{outcome.code}: {outcome.message}")
                    return 0
                log_warning(f"{outcome.code}: {outcome.message}")
                return 1

        if "--daemon" in argv:
            app.start_scheduler()
            try:
                app.scheduler.wait()
            except KeyboardInterrupt:
                log("Interrupted by user")
            finally:
                app.shutdown()
            return 0

        # --redeem-all, and the default action
        _print_results(_run_cancellable(app))
        return 0

    except ShiftError as e:
        log_error(e.user_message)
        if config.verbose:
            log_error(e.message)
        return 1
    except KeyboardInterrupt:
        log("Interrupted by user")
        return 130
    except Exception as e:
        log_error(f"Unexpected error: {user_message(e)}")
        if config.verbose:
            log(f"Traceback: {traceback.format_exc()}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
