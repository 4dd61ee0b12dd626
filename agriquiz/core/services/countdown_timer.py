"""Countdown timer with pause/resume, computed from absolute timestamps."""

from __future__ import annotations

from enum import Enum
import logging
import math
from typing import Callable

from agriquiz.constants.quiz_constants import DEFAULT_TIME_LIMIT_SECONDS, TICK_INTERVAL_SECONDS
from agriquiz.core.scheduling import Clock, ScheduledCall, Scheduler, ThreadingScheduler, wall_clock_ms

logger = logging.getLogger(__name__)


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRED = "expired"
    STOPPED = "stopped"


def coerce_time_limit(value: object) -> int:
    """Return a usable whole-second limit, falling back to one hour."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        logger.warning("Invalid timer limit %r, using %s seconds", value, DEFAULT_TIME_LIMIT_SECONDS)
        return DEFAULT_TIME_LIMIT_SECONDS
    if math.isnan(value) or math.isinf(value) or math.floor(value) <= 0:
        logger.warning("Invalid timer limit %r, using %s seconds", value, DEFAULT_TIME_LIMIT_SECONDS)
        return DEFAULT_TIME_LIMIT_SECONDS
    return int(math.floor(value))


class CountdownTimer:
    """Counts a time limit down to zero and calls ``on_expire`` once.

    Remaining time is always recomputed as
    ``limit - floor((now - started - paused_total) / 1000)`` so that late or
    skipped ticks never accumulate drift. Ticks re-schedule themselves one at
    a time; a tick that was cancelled by ``pause``, ``reset`` or ``cancel``
    does nothing when it eventually runs.

    ``cancel`` is final: the timer moves to ``stopped`` with its remaining
    time frozen at the cancel instant, and later ``start`` or ``reset`` calls
    are ignored.
    """

    def __init__(
        self,
        time_limit: object,
        on_expire: Callable[[], None],
        *,
        clock: Clock = wall_clock_ms,
        scheduler: Scheduler | None = None,
        on_tick: Callable[[int], None] | None = None,
        tick_interval: float = TICK_INTERVAL_SECONDS,
    ) -> None:
        self._configured_limit = coerce_time_limit(time_limit)
        self._time_limit = self._configured_limit
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._clock = clock
        self._scheduler = scheduler or ThreadingScheduler()
        self._tick_interval = tick_interval

        self._state = TimerState.IDLE
        self._started_at_ms: int | None = None
        self._paused_at_ms: int | None = None
        self._stopped_at_ms: int | None = None
        self._total_paused_ms: int = 0
        self._pending: ScheduledCall | None = None
        self._generation: int = 0
        self._disposed: bool = False

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def time_limit(self) -> int:
        return self._time_limit

    @property
    def is_running(self) -> bool:
        return self._state is TimerState.RUNNING

    @property
    def remaining(self) -> int:
        """Seconds left, without firing expiry. See :meth:`sync`."""
        return self._compute_remaining()

    def start(self) -> None:
        """Start the countdown, or resume it after a pause."""
        if self._disposed or self._state in (TimerState.RUNNING, TimerState.EXPIRED):
            return

        now = self._clock()
        if self._state is TimerState.IDLE:
            self._started_at_ms = now
            self._total_paused_ms = 0
        else:
            pause_duration = now - (self._paused_at_ms if self._paused_at_ms is not None else now)
            self._total_paused_ms += max(0, pause_duration)
            self._paused_at_ms = None
            logger.debug("Timer resumed after %s ms", pause_duration)

        self._state = TimerState.RUNNING
        if self.sync() > 0:
            self._schedule_tick()

    def pause(self) -> None:
        if self._state is not TimerState.RUNNING:
            return
        if self.sync() == 0:
            return
        self._paused_at_ms = self._clock()
        self._state = TimerState.PAUSED
        self._cancel_pending()

    def reset(self, new_time: object = None) -> None:
        """Stop the countdown and rearm it with ``new_time`` or the original limit."""
        if self._disposed:
            return
        self._cancel_pending()
        self._time_limit = (
            self._configured_limit if new_time is None else coerce_time_limit(new_time)
        )
        self._started_at_ms = None
        self._paused_at_ms = None
        self._total_paused_ms = 0
        self._state = TimerState.IDLE

    def cancel(self) -> None:
        """Make the timer inert: no further ticks and no expiry callback."""
        if self._disposed:
            return
        self._cancel_pending()
        if self._state is not TimerState.EXPIRED:
            if self._state is TimerState.PAUSED:
                self._stopped_at_ms = self._paused_at_ms
            elif self._state is TimerState.RUNNING:
                self._stopped_at_ms = self._clock()
            self._state = TimerState.STOPPED
        self._disposed = True

    def sync(self) -> int:
        """Recompute the remaining time and expire the timer if it hit zero."""
        remaining = self._compute_remaining()
        if remaining == 0 and self._state is TimerState.RUNNING and not self._disposed:
            self._state = TimerState.EXPIRED
            self._cancel_pending()
            logger.info("Timer expired after %s seconds", self._time_limit)
            self._on_expire()
        return remaining

    def _compute_remaining(self) -> int:
        if self._state is TimerState.EXPIRED:
            return 0
        if self._started_at_ms is None:
            return self._time_limit

        if self._state is TimerState.PAUSED and self._paused_at_ms is not None:
            now = self._paused_at_ms
        elif self._state is TimerState.STOPPED and self._stopped_at_ms is not None:
            now = self._stopped_at_ms
        else:
            now = self._clock()
        elapsed_ms = max(0, now - self._started_at_ms - self._total_paused_ms)
        return max(0, self._time_limit - elapsed_ms // 1000)

    def _schedule_tick(self) -> None:
        generation = self._generation
        self._pending = self._scheduler.call_later(
            self._tick_interval, lambda: self._tick(generation)
        )

    def _cancel_pending(self) -> None:
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _tick(self, generation: int) -> None:
        if generation != self._generation or self._disposed:
            return
        if self._state is not TimerState.RUNNING:
            return
        self._pending = None

        if self._on_tick is not None:
            self._on_tick(self._compute_remaining())
        self.sync()
        if self._state is TimerState.RUNNING and generation == self._generation and not self._disposed:
            self._schedule_tick()
