import time
from collections.abc import Callable

from pydantic import Field

from imbue.machine.errors import OperationTimeoutError
from imbue.machine.utils.model_base import FrozenModel
from imbue.machine.utils.model_base import NonNegativeFloat
from imbue.machine.utils.model_base import PositiveInt


class PollPolicy(FrozenModel):
    """A fixed-interval, fixed-attempt polling budget."""

    interval_seconds: NonNegativeFloat = Field(description="Delay between two attempts")
    max_attempts: PositiveInt = Field(description="Number of attempts before giving up")


class Deadline:
    """A point in time after which an operation must stop waiting.

    The clock is injectable so tests can drive expiry without sleeping.
    """

    def __init__(self, expires_at: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.expires_at = expires_at
        self._clock = clock

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        return cls(clock() + seconds, clock)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    def is_expired(self) -> bool:
        return self._clock() >= self.expires_at

    def check(self, operation: str) -> None:
        """Raise OperationTimeoutError if the deadline has passed."""
        if self.is_expired():
            raise OperationTimeoutError(f"Deadline exceeded during {operation}")


def poll_until(
    condition: Callable[[], bool],
    policy: PollPolicy,
    sleep: Callable[[float], None] = time.sleep,
    deadline: Deadline | None = None,
    operation: str = "poll",
) -> bool:
    """Evaluate condition up to policy.max_attempts times, sleeping policy.interval_seconds between attempts.

    Returns True as soon as the condition holds and False once the attempt budget
    is spent. Raises OperationTimeoutError if the deadline passes first.
    """
    for attempt in range(policy.max_attempts):
        if deadline is not None:
            deadline.check(operation)
        if condition():
            return True
        if attempt + 1 < policy.max_attempts:
            delay = policy.interval_seconds
            if deadline is not None:
                delay = min(delay, deadline.remaining())
            sleep(delay)
    return False


def wait_for(
    condition: Callable[[], bool],
    policy: PollPolicy,
    sleep: Callable[[float], None] = time.sleep,
    deadline: Deadline | None = None,
    error_message: str = "Condition not met within the poll budget",
) -> None:
    """Like poll_until, but raises OperationTimeoutError when the budget runs out."""
    if not poll_until(condition, policy, sleep, deadline, operation=error_message):
        raise OperationTimeoutError(error_message)
