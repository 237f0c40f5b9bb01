from autoredeem.models import ProgressEvent, ProgressStatus
from autoredeem.progress import ProgressBus


def test_new_subscriber_gets_current_state():
    bus = ProgressBus()
    bus.emit(ProgressEvent(current=2, total=5, status=ProgressStatus.REDEEMING, current_code="X"))

    seen = []
    bus.subscribe(seen.append)

    assert len(seen) == 1
    assert seen[0].current == 2
    assert seen[0].current_code == "X"


def test_emit_reaches_listeners_until_unsubscribed():
    bus = ProgressBus()
    seen = []
    unsubscribe = bus.subscribe(seen.append)

    bus.emit(ProgressEvent(current=1, total=1, status=ProgressStatus.DONE))
    unsubscribe()
    bus.emit(ProgressEvent(status=ProgressStatus.ERROR))

    assert [event.status for event in seen] == [ProgressStatus.IDLE, ProgressStatus.DONE]
    assert bus.current.status is ProgressStatus.ERROR


def test_last_write_wins_and_state_is_copied():
    bus = ProgressBus()
    results = [{"code": "A", "success": True, "message": "ok"}]
    bus.emit(ProgressEvent(current=1, total=2, status=ProgressStatus.REDEEMING, results=results))
    results.append({"code": "B", "success": False, "message": "no"})

    assert len(bus.current.results) == 1

    bus.reset()
    assert bus.current.status is ProgressStatus.IDLE


def test_failing_listener_does_not_break_emit():
    bus = ProgressBus()
    seen = []

    def broken(event):
        raise ValueError("listener bug")

    bus.subscribe(broken)
    bus.subscribe(seen.append)
    bus.emit(ProgressEvent(status=ProgressStatus.CHECKING))

    assert seen[-1].status is ProgressStatus.CHECKING
