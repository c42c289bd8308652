from pydantic import Field
from pydantic import computed_field

from imbue.machine.errors import HostActionsFailedError
from imbue.machine.primitives import HostName
from imbue.machine.primitives import LifecycleAction
from imbue.machine.utils.model_base import FrozenModel


class ErrorInfo(FrozenModel):
    """Why an action failed on one host."""

    error_type: str = Field(description="Class name of the exception")
    message: str = Field(description="Exception message")

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorInfo":
        return cls(error_type=type(error).__name__, message=str(error))


class HostActionOutcome(FrozenModel):
    """Result of one action on one host."""

    host_name: HostName = Field(description="Host the action ran on")
    is_success: bool = Field(description="Whether the action completed without error")
    error: ErrorInfo | None = Field(default=None, description="Set when the action failed")


class ActionResult(FrozenModel):
    """Result of one action across every requested host, in request order."""

    action: LifecycleAction = Field(description="Action that was run")
    outcomes: tuple[HostActionOutcome, ...] = Field(description="One outcome per requested host")

    @computed_field
    @property
    def failures(self) -> tuple[HostActionOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if not outcome.is_success)

    @computed_field
    @property
    def is_success(self) -> bool:
        return not self.failures

    def raise_if_failed(self) -> None:
        """Raise HostActionsFailedError listing every failed host and its cause."""
        if self.is_success:
            return
        failures = [
            (str(outcome.host_name), outcome.error.message if outcome.error else "unknown error")
            for outcome in self.failures
        ]
        raise HostActionsFailedError(self.action.value.lower(), failures)
