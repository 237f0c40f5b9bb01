import threading

import pytest

from autoredeem.lock import RedemptionGuard


def test_hold_acquires_and_releases():
    guard = RedemptionGuard()

    with guard.hold() as acquired:
        assert acquired
        assert guard.in_progress

    assert not guard.in_progress


def test_second_holder_is_refused():
    guard = RedemptionGuard()

    with guard.hold() as first:
        with guard.hold() as second:
            assert first
            assert not second
        # The refused holder must not release the lock it never took
        assert guard.in_progress


def test_released_on_exception():
    guard = RedemptionGuard()

    with pytest.raises(RuntimeError):
        with guard.hold():
            raise RuntimeError("boom")

    assert not guard.in_progress


def test_only_one_thread_wins():
    guard = RedemptionGuard()
    start = threading.Barrier(8)
    release = threading.Event()
    winners = []

    def contend():
        start.wait()
        with guard.hold() as acquired:
            if acquired:
                winners.append(threading.current_thread().name)
                release.wait(2)

    threads = [threading.Thread(target=contend) for _ in range(8)]
    for thread in threads:
        thread.start()
    # Losers return immediately; give the winner a moment then let it go
    for thread in threads:
        thread.join(0.2)
    release.set()
    for thread in threads:
        thread.join()

    assert len(winners) == 1
    assert not guard.in_progress
