"""Cancellable delayed tasks used to debounce remote refreshes."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def thread_timer(delay: float, action: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(delay, action)
    timer.daemon = True
    return timer


class Debouncer:
    """Run ``action`` once, ``delay`` seconds after the latest trigger.

    Each trigger cancels the pending run and schedules a new one, so a burst
    of triggers collapses into a single call.
    """

    def __init__(self, delay: float, action: Callable[[], None], timer_factory: TimerFactory = thread_timer) -> None:
        self.delay = delay
        self._action = action
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._pending: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def trigger(self, delay: float | None = None) -> None:
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            handle: TimerHandle | None = None

            def fire() -> None:
                with self._lock:
                    if self._pending is not handle:
                        return
                    self._pending = None
                self._action()

            handle = self._timer_factory(self.delay if delay is None else delay, fire)
            self._pending = handle
            handle.start()

    def cancel(self) -> None:
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
