"""Clock and callback scheduling primitives used by timers and heartbeats.

Timers never count ticks; they read an absolute millisecond clock and ask a
scheduler to call them back roughly once per interval. Both are injected so
tests can drive time by hand.
"""

from __future__ import annotations

from threading import RLock, Timer
import time
from typing import Callable, ContextManager, Protocol

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    """Current wall-clock time in whole milliseconds."""
    return int(time.time() * 1000)


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall: ...


class ThreadingScheduler:
    """Runs callbacks on daemon timer threads, optionally under a shared lock.

    Passing the lock that guards the session state serialises every callback
    with the rest of the writers to that state.
    """

    def __init__(self, lock: RLock | ContextManager | None = None) -> None:
        self._lock = lock

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        def run() -> None:
            if self._lock is None:
                callback()
                return
            with self._lock:
                callback()

        timer = Timer(max(0.0, delay_seconds), run)
        timer.daemon = True
        timer.start()
        return timer
