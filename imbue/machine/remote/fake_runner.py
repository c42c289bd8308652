from collections.abc import Callable

from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.interfaces.data_types import CommandResult


class FakeCommandRunner(CommandRunnerInterface):
    """In-memory command runner that records commands and answers from canned responses.

    Responses are matched by substring, first registered match wins. Commands with no
    matching response succeed with empty output.
    """

    def __init__(self) -> None:
        self.commands: list[str] = []
        self._responses: list[tuple[str, CommandResult | BaseException]] = []

    def respond(self, substring: str, stdout: str = "", stderr: str = "", success: bool = True) -> None:
        self._responses.append((substring, CommandResult(stdout=stdout, stderr=stderr, success=success)))

    def fail_with(self, substring: str, error: BaseException) -> None:
        """Raise error (instead of returning a result) for commands containing substring."""
        self._responses.append((substring, error))

    def run(self, command: str, timeout_seconds: float | None = None) -> CommandResult:
        self.commands.append(command)
        for substring, response in self._responses:
            if substring in command:
                if isinstance(response, BaseException):
                    raise response
                return response
        return CommandResult(stdout="", stderr="", success=True)

    def commands_containing(self, substring: str) -> list[str]:
        return [command for command in self.commands if substring in command]

    def index_of(self, substring: str) -> int:
        """Position of the first recorded command containing substring, or -1."""
        return next((i for i, command in enumerate(self.commands) if substring in command), -1)


def fake_runner_factory(runner: FakeCommandRunner) -> Callable[..., CommandRunnerInterface]:
    """A command runner factory that hands out the same fake runner for every driver."""

    def factory(driver: object) -> CommandRunnerInterface:
        return runner

    return factory
