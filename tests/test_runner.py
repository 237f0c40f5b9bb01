import threading
from unittest import mock

import pytest

from autoredeem.models import ProgressStatus, RedemptionOutcome
from autoredeem.orchestrator import Redeemer
from autoredeem.progress import ProgressBus
from autoredeem.runner import CONNECTION_LOST, BatchRunner

CODES = ["AAAAA-AAAAA-AAAAA-AAAAA-AAAAA", "BBBBB-BBBBB-BBBBB-BBBBB-BBBBB", "CCCCC-CCCCC-CCCCC-CCCCC-CCCCC"]


@pytest.fixture
def redeemer():
    fake = mock.Mock(spec=Redeemer)
    fake.redeem_one.side_effect = lambda code, is_retry=False: RedemptionOutcome(
        code=code, success=True, message="Redeemed on: Borderlands 4 (steam)")
    return fake


@pytest.fixture
def bus():
    bus = ProgressBus()
    bus.events = []
    bus.subscribe(bus.events.append)
    return bus


def test_runs_every_code_and_reports_progress(redeemer, bus):
    results = BatchRunner(redeemer, bus).run(CODES)

    assert [r["code"] for r in results] == CODES
    assert all(r["success"] for r in results)

    statuses = [e.status for e in bus.events[1:]]
    assert statuses == [ProgressStatus.CHECKING] + [ProgressStatus.REDEEMING] * 3 + [ProgressStatus.DONE]
    redeeming = [e for e in bus.events if e.status is ProgressStatus.REDEEMING]
    assert [(e.current, e.total, e.current_code) for e in redeeming] == [
        (1, 3, CODES[0]), (2, 3, CODES[1]), (3, 3, CODES[2])]
    assert len(bus.current.results) == 3


def test_retry_flag_is_passed_through(redeemer, bus):
    BatchRunner(redeemer, bus).run(CODES[:1], retry=True)
    redeemer.redeem_one.assert_called_once_with(CODES[0], is_retry=True)


def test_cancel_stops_after_in_flight_code(redeemer, bus):
    cancel = threading.Event()

    def redeem_and_cancel(code, is_retry=False):
        cancel.set()
        return RedemptionOutcome(code=code, success=True, message="ok")

    redeemer.redeem_one.side_effect = redeem_and_cancel
    results = BatchRunner(redeemer, bus).run(CODES, cancel=cancel)

    assert [r["code"] for r in results] == CODES[:1]
    assert bus.current.status is ProgressStatus.DONE


def test_network_loss_marks_remaining_codes(redeemer, bus):
    online = iter([True, False])
    results = BatchRunner(redeemer, bus, is_online=lambda: next(online)).run(CODES)

    assert results[0]["success"]
    assert [r["message"] for r in results[1:]] == [CONNECTION_LOST, CONNECTION_LOST]
    assert redeemer.redeem_one.call_count == 1
    assert bus.current.status is ProgressStatus.ERROR


def test_unexpected_exception_is_recorded_and_loop_continues(redeemer, bus):
    def flaky(code, is_retry=False):
        if code == CODES[1]:
            raise RuntimeError("parser exploded")
        return RedemptionOutcome(code=code, success=True, message="ok")

    redeemer.redeem_one.side_effect = flaky
    results = BatchRunner(redeemer, bus).run(CODES)

    assert [r["success"] for r in results] == [True, False, True]
    assert results[1]["message"] == "parser exploded"


def test_empty_run(redeemer, bus):
    assert BatchRunner(redeemer, bus).run([]) == []
    assert bus.current.status is ProgressStatus.DONE
