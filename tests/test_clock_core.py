from __future__ import annotations

from dataclasses import dataclass

import pytest

from math_coach.clock import ClockTicker, RealClock


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def test_ticker_fires_once_per_whole_interval() -> None:
    clock = FakeClock()
    ticker = ClockTicker(clock)
    fired: list[float] = []
    ticker.start(lambda: fired.append(clock.t))

    clock.advance(0.99)
    assert ticker.pump() == 0
    clock.advance(0.01)
    assert ticker.pump() == 1
    clock.advance(2.5)
    assert ticker.pump() == 2
    assert len(fired) == 3


def test_cancel_from_inside_callback_stops_catch_up() -> None:
    clock = FakeClock()
    ticker = ClockTicker(clock)
    count = 0

    def cb() -> None:
        nonlocal count
        count += 1
        if count == 2:
            ticker.cancel()

    ticker.start(cb)
    clock.advance(10.0)
    assert ticker.pump() == 2
    assert not ticker.active


def test_restart_measures_from_the_new_start() -> None:
    clock = FakeClock(t=5.0)
    ticker = ClockTicker(clock)
    ticker.start(lambda: None)
    ticker.cancel()
    clock.advance(3.0)
    ticker.start(lambda: None)
    assert ticker.pump() == 0
    clock.advance(1.0)
    assert ticker.pump() == 1


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ClockTicker(FakeClock(), interval_s=0)


def test_real_clock_is_monotonic() -> None:
    c = RealClock()
    a = c.now()
    assert c.now() >= a
