"""Single-flight guard shared by manual and scheduled redemption runs."""

import threading
from contextlib import contextmanager


class RedemptionGuard:
    """Non-blocking lock; a second caller is told to skip instead of waiting"""

    def __init__(self):
        self._lock = threading.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self):
        """Yield True if the guard was acquired, False if a run is already active"""
        acquired = self._lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()
