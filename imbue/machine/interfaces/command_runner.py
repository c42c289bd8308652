from abc import ABC
from abc import abstractmethod

from imbue.machine.errors import CommandFailedError
from imbue.machine.interfaces.data_types import CommandResult


class CommandRunnerInterface(ABC):
    """Runs shell commands on one remote host.

    Implementations must be safe to use from the thread that owns the host; a runner
    is never shared between hosts.
    """

    @abstractmethod
    def run(self, command: str, timeout_seconds: float | None = None) -> CommandResult:
        """Run a command in the remote login shell and return its output.

        A non-zero exit status is reported through CommandResult.success, not raised.
        Raises BackendUnavailableError if the remote shell cannot be reached.
        """

    def run_checked(self, command: str, timeout_seconds: float | None = None) -> CommandResult:
        """Run a command and raise CommandFailedError if it fails."""
        result = self.run(command, timeout_seconds)
        if not result.success:
            raise CommandFailedError(command, result.stdout, result.stderr)
        return result

    def close(self) -> None:
        """Release the connection to the host, if one is open."""
