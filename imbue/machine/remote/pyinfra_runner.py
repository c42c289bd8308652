from typing import Any

from loguru import logger
from paramiko import SSHException
from pyinfra.api import Host as PyinfraHost
from pyinfra.api import State as PyinfraState
from pyinfra.api.command import StringCommand
from pyinfra.api.exceptions import ConnectError as PyinfraConnectError
from pyinfra.api.inventory import Inventory

from imbue.machine.errors import BackendUnavailableError
from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.interfaces.data_types import CommandResult
from imbue.machine.interfaces.data_types import SSHCredentials
from imbue.machine.interfaces.driver import DriverInterface


def create_pyinfra_host(credentials: SSHCredentials) -> PyinfraHost:
    """Create a pyinfra host with an SSH connector for the given credentials."""
    host_data: dict[str, Any] = {
        "ssh_user": credentials.username,
        "ssh_port": credentials.port,
        # Freshly created hosts present host keys nobody has seen yet
        "ssh_strict_host_key_checking": "off",
    }
    if credentials.key_path is not None:
        host_data["ssh_key"] = str(credentials.key_path)

    names_data = ([(credentials.hostname, host_data)], {})
    inventory = Inventory(names_data)
    state = PyinfraState(inventory=inventory)

    pyinfra_host = inventory.get_host(credentials.hostname)
    pyinfra_host.init(state)
    return pyinfra_host


class PyinfraCommandRunner(CommandRunnerInterface):
    """Runs commands over SSH through a pyinfra host, connecting lazily on first use."""

    def __init__(self, pyinfra_host: PyinfraHost, description: str) -> None:
        self.pyinfra_host = pyinfra_host
        self.description = description

    @classmethod
    def for_credentials(cls, credentials: SSHCredentials) -> "PyinfraCommandRunner":
        description = f"{credentials.username}@{credentials.hostname}:{credentials.port}"
        return cls(create_pyinfra_host(credentials), description)

    def _ensure_connected(self) -> None:
        if not self.pyinfra_host.connected:
            self.pyinfra_host.connect(raise_exceptions=True)

    def run(self, command: str, timeout_seconds: float | None = None) -> CommandResult:
        logger.debug("Running on {}: {}", self.description, command)
        try:
            self._ensure_connected()
            success, output = self.pyinfra_host.run_shell_command(
                StringCommand(command),
                _timeout=int(timeout_seconds) if timeout_seconds else None,
            )
        except PyinfraConnectError as e:
            raise BackendUnavailableError(f"Could not connect to {self.description}: {e}") from e
        except (EOFError, SSHException) as e:
            raise BackendUnavailableError(f"Connection to {self.description} failed while running a command") from e
        except TimeoutError as e:
            raise BackendUnavailableError(f"Command on {self.description} timed out: {command}") from e
        except OSError as e:
            if "Socket is closed" in str(e):
                raise BackendUnavailableError(f"Connection to {self.description} was closed") from e
            raise
        logger.trace("Command on {} finished (success={})\n{}", self.description, success, output.stdout)
        return CommandResult(stdout=output.stdout, stderr=output.stderr, success=success)

    def close(self) -> None:
        if self.pyinfra_host.connected:
            logger.trace("Disconnecting from {}", self.description)
            self.pyinfra_host.disconnect()


def build_pyinfra_command_runner(driver: DriverInterface) -> CommandRunnerInterface:
    """Default command runner factory: SSH to the address and credentials the driver reports."""
    return PyinfraCommandRunner.for_credentials(driver.get_ssh_credentials())
