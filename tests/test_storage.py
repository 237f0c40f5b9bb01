from datetime import datetime, timedelta, timezone

import pytest

from autoredeem.models import RedeemedCodeRecord, Session, UserConfig
from autoredeem.storage import MemoryStore, RedemptionLedger, SQLiteStore

from .helpers import CODE, OTHER_CODE


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return SQLiteStore(tmp_path / "nested" / "store.db")


def test_store_get_set_delete(any_store):
    assert any_store.get("missing") is None
    assert any_store.get("missing", []) == []

    any_store.set("redeemed", [CODE])
    assert any_store.get("redeemed") == [CODE]

    any_store.set("redeemed", [CODE, OTHER_CODE])
    assert any_store.get("redeemed") == [CODE, OTHER_CODE]

    any_store.delete("redeemed")
    assert any_store.get("redeemed") is None
    any_store.delete("redeemed")


def test_memory_store_returns_copies():
    store = MemoryStore()
    store.set("history", [])
    store.get("history").append("mutated")
    assert store.get("history") == []


def test_sqlite_store_survives_reopen(tmp_path):
    path = tmp_path / "store.db"
    SQLiteStore(path).set("nextAutoRedeemAt", "2026-01-01T00:00:00+00:00")

    reopened = SQLiteStore(path)
    assert reopened.get("nextAutoRedeemAt") == "2026-01-01T00:00:00+00:00"
    with reopened.get_connection() as conn:
        versions = conn.execute("SELECT version FROM db_version").fetchall()
    assert versions == [(1,)]


def test_add_failed_creates_then_increments(ledger):
    first = ledger.add_failed(CODE, "Invalid code")
    assert first.attempt_count == 1

    second = ledger.add_failed(CODE, "Server error: rate limited")
    assert second.attempt_count == 2
    assert ledger.get_failed(CODE).reason == "Server error: rate limited"
    assert list(ledger.failed_codes()) == [CODE]


def test_remove_and_clear_failed(ledger):
    ledger.add_failed(CODE, "Invalid code")
    ledger.add_failed(OTHER_CODE, "Invalid code")

    ledger.remove_failed(CODE)
    assert ledger.get_failed(CODE) is None

    assert ledger.clear_failed() == 1
    assert ledger.failed_codes() == {}


def test_mark_redeemed_drops_failed_record(ledger):
    ledger.add_failed(CODE, "Invalid code")

    ledger.mark_redeemed(CODE)
    ledger.mark_redeemed(CODE)

    assert ledger.redeemed_codes() == {CODE}
    assert ledger.get_failed(CODE) is None
    assert ledger.store.get("redeemed") == [CODE]


def test_history_is_newest_first_and_marks_redeemed(ledger):
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    ledger.add_history(RedeemedCodeRecord(CODE, now, "Borderlands 4", "steam"))
    ledger.add_history(RedeemedCodeRecord(CODE, now + timedelta(seconds=5), "Borderlands 4", "xbox"))

    history = ledger.history()
    assert [entry.platform for entry in history] == ["xbox", "steam"]
    assert history[0].redeemed_at == now + timedelta(seconds=5)
    assert ledger.is_redeemed(CODE)


def test_next_auto_redeem_round_trip(ledger):
    assert ledger.next_auto_redeem_at() is None

    when = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)
    ledger.set_next_auto_redeem_at(when)
    assert ledger.next_auto_redeem_at() == when

    ledger.set_next_auto_redeem_at(None)
    assert ledger.next_auto_redeem_at() is None


def test_unreadable_next_run_is_ignored(store, ledger):
    store.set("nextAutoRedeemAt", "not a date")
    assert ledger.next_auto_redeem_at() is None


def test_session_round_trip(ledger):
    session = Session.create({"_session_id": "abc"})
    ledger.save_session(session)

    loaded = ledger.load_session()
    assert loaded.cookies == {"_session_id": "abc"}
    assert loaded.expires_at == session.expires_at

    ledger.clear_session()
    assert ledger.load_session() is None


def test_user_config_merges_defaults(store, ledger):
    defaults = UserConfig(games=["Borderlands 4"], auto_redeem=True, check_interval_minutes=60)
    assert ledger.load_user_config(defaults) == defaults

    store.set("config", {"autoRedeem": False, "checkIntervalMinutes": 15})
    loaded = ledger.load_user_config(defaults)
    assert loaded.auto_redeem is False
    assert loaded.check_interval_minutes == 15
    assert loaded.games == ["Borderlands 4"]

    ledger.save_user_config(loaded)
    assert store.get("config")["checkIntervalMinutes"] == 15


def test_malformed_failed_records_are_skipped(store, ledger):
    store.set("failedCodes", [{"code": CODE}, {"code": OTHER_CODE, "failedAt": "2026-01-01T00:00:00Z",
                                                "reason": "x", "attemptCount": 2}])
    assert list(ledger.failed_codes()) == [OTHER_CODE]
