"""Tick sources and the countdown used for timed quizzes.

The session engine never talks to a UI framework's timer directly. It asks a
``Ticker`` for a cancelable periodic callback, which keeps the countdown
testable: ``ManualTicker`` advances a virtual clock, ``AsyncioTicker`` runs on
the event loop that also carries the submission call.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Protocol

from quizpin.constants.quiz_constants import TIME_WARNING_WINDOW_SECONDS
from quizpin.core.errors import ValidationError

TickCallback = Callable[[], None]


class TickHandle(Protocol):
    def cancel(self) -> None: ...


class Ticker(Protocol):
    def start(self, interval_seconds: float, callback: TickCallback) -> TickHandle: ...


class _AsyncioTickHandle:
    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: TickCallback) -> None:
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._cancelled = False
        self._deadline = loop.time() + interval
        self._timer: asyncio.TimerHandle | None = loop.call_at(self._deadline, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        # Schedule against the original deadline so ticks do not drift.
        self._deadline += self._interval
        self._timer = self._loop.call_at(self._deadline, self._fire)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class AsyncioTicker:
    """Periodic callbacks on the running asyncio loop."""

    def start(self, interval_seconds: float, callback: TickCallback) -> TickHandle:
        loop = asyncio.get_running_loop()
        return _AsyncioTickHandle(loop, interval_seconds, callback)


@dataclass(slots=True)
class _ManualTimer:
    interval: float
    callback: TickCallback
    next_due: float
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTicker:
    """Virtual clock and tick source driven explicitly by ``advance``."""

    def __init__(self, start_time: float = 0.0) -> None:
        self._now = start_time
        self._timers: list[_ManualTimer] = []

    def now(self) -> float:
        return self._now

    def start(self, interval_seconds: float, callback: TickCallback) -> TickHandle:
        if interval_seconds <= 0:
            raise ValidationError("Tick interval must be positive.")
        timer = _ManualTimer(interval_seconds, callback, self._now + interval_seconds)
        self._timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every tick that falls due on the way."""
        target = self._now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.next_due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.next_due)
            self._now = timer.next_due
            timer.next_due += timer.interval
            timer.callback()
        self._now = target
        self._timers = [t for t in self._timers if not t.cancelled]

    @property
    def active_timer_count(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)


class Countdown:
    """Whole-second countdown for a timed quiz."""

    def __init__(self, total_seconds: int) -> None:
        if total_seconds <= 0:
            raise ValidationError("Countdown duration must be a positive number of seconds.")
        self.total_seconds = total_seconds
        self._remaining = total_seconds

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def expired(self) -> bool:
        return self._remaining <= 0

    @property
    def fraction_remaining(self) -> float:
        return self._remaining / self.total_seconds

    @property
    def in_warning_window(self) -> bool:
        return 0 < self._remaining <= TIME_WARNING_WINDOW_SECONDS

    def tick(self) -> bool:
        """Consume one second. Returns True on the tick that reaches zero."""
        if self._remaining <= 0:
            return False
        self._remaining -= 1
        return self._remaining == 0

    def format_remaining(self) -> str:
        minutes, seconds = divmod(self._remaining, 60)
        return f"{minutes}:{seconds:02d}"
