from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class TickScheduler(Protocol):
    """Periodic one-second tick source owned by an attempt session."""

    def start(self, callback: Callable[[], None]) -> None: ...
    def cancel(self) -> None: ...


class ClockTicker:
    """Cooperative one-second ticker.

    There is no thread: the frame loop calls ``pump()`` and the callback fires
    once for every whole second of ``clock`` time since ``start()``. Ticks and
    input handling therefore run on the same execution context.
    """

    def __init__(self, clock: Clock, *, interval_s: float = 1.0) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self._clock = clock
        self._interval_s = float(interval_s)
        self._callback: Callable[[], None] | None = None
        self._next_at: float | None = None

    @property
    def active(self) -> bool:
        return self._callback is not None

    def start(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._next_at = self._clock.now() + self._interval_s

    def cancel(self) -> None:
        self._callback = None
        self._next_at = None

    def pump(self) -> int:
        """Fire any due ticks. Returns the number fired."""

        fired = 0
        while self._callback is not None and self._next_at is not None:
            if self._clock.now() < self._next_at:
                break
            self._next_at += self._interval_s
            fired += 1
            # The callback may cancel us (auto-submit); re-check on each loop.
            self._callback()
        return fired
