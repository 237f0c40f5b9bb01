"""Progress state for redemption runs, observable by any number of listeners."""

import copy
import threading
from typing import Callable, List

from .log import log_warning
from .models import ProgressEvent

Listener = Callable[[ProgressEvent], None]


class ProgressBus:
    """Last-write-wins progress state

    New subscribers are called immediately with the current state, so a
    late observer never misses where a run is.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._state = ProgressEvent()
        self._listeners: List[Listener] = []

    @property
    def current(self) -> ProgressEvent:
        with self._lock:
            return copy.deepcopy(self._state)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it"""
        with self._lock:
            self._listeners.append(listener)
            snapshot = copy.deepcopy(self._state)
        self._deliver(listener, snapshot)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: ProgressEvent):
        with self._lock:
            self._state = copy.deepcopy(event)
            listeners = list(self._listeners)
        for listener in listeners:
            self._deliver(listener, copy.deepcopy(event))

    def reset(self):
        self.emit(ProgressEvent())

    @staticmethod
    def _deliver(listener: Listener, event: ProgressEvent):
        # A broken observer must not break the run it observes
        try:
            listener(event)
        except Exception as e:
            log_warning(f"Progress listener failed: {e}")
