"""Tests for fixed-interval call pacing."""

from __future__ import annotations

import pytest

from ticket_token_metrics.sources.rate_limit import FixedIntervalGate


def test_first_call_passes_and_later_calls_wait_for_remainder() -> None:
    clock = _FakeClock()
    gate = FixedIntervalGate(interval_seconds=0.2, clock=clock.now, sleep=clock.sleep)

    gate.wait()
    clock.advance(0.05)
    gate.wait()
    clock.advance(0.5)
    gate.wait()

    assert clock.sleeps == [pytest.approx(0.15)]


def test_negative_interval_is_rejected() -> None:
    with pytest.raises(ValueError):
        FixedIntervalGate(interval_seconds=-1)


class _FakeClock:
    def __init__(self) -> None:
        self.current = 100.0
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds
