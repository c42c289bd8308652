"""Unit tests for the polling module."""

import pytest

from imbue.machine.errors import OperationTimeoutError
from imbue.machine.utils.model_base import NonNegativeFloat
from imbue.machine.utils.model_base import PositiveInt
from imbue.machine.utils.polling import Deadline
from imbue.machine.utils.polling import PollPolicy
from imbue.machine.utils.polling import poll_until
from imbue.machine.utils.polling import wait_for


class FakeClock:
    """A manually advanced monotonic clock whose sleep advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _policy(interval: float, attempts: int) -> PollPolicy:
    return PollPolicy(interval_seconds=NonNegativeFloat(interval), max_attempts=PositiveInt(attempts))


def test_poll_until_returns_true_without_sleeping_when_condition_met() -> None:
    clock = FakeClock()

    assert poll_until(lambda: True, _policy(2.0, 5), sleep=clock.sleep) is True
    assert clock.sleeps == []


def test_poll_until_spends_exact_budget() -> None:
    clock = FakeClock()
    calls: list[int] = []

    def condition() -> bool:
        calls.append(1)
        return False

    assert poll_until(condition, _policy(2.0, 4), sleep=clock.sleep) is False
    assert len(calls) == 4
    assert clock.sleeps == [2.0, 2.0, 2.0]


def test_poll_until_stops_when_condition_becomes_true() -> None:
    results = iter([False, False, True])

    assert poll_until(lambda: next(results), _policy(0.0, 10), sleep=lambda _: None) is True


def test_poll_until_raises_when_deadline_expires() -> None:
    clock = FakeClock()
    deadline = Deadline.after(5.0, clock=clock)

    with pytest.raises(OperationTimeoutError):
        poll_until(lambda: False, _policy(2.0, 100), sleep=clock.sleep, deadline=deadline)

    assert clock.now == pytest.approx(5.0)


def test_wait_for_raises_when_budget_runs_out() -> None:
    with pytest.raises(OperationTimeoutError, match="never ready"):
        wait_for(lambda: False, _policy(0.0, 2), sleep=lambda _: None, error_message="never ready")


def test_deadline_remaining_is_never_negative() -> None:
    clock = FakeClock()
    deadline = Deadline.after(1.0, clock=clock)
    clock.now = 3.0

    assert deadline.remaining() == 0.0
    assert deadline.is_expired()
