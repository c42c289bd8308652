import shutil
from collections.abc import Callable
from pathlib import Path
from typing import Final

from loguru import logger
from pydantic import Field

from imbue.machine.errors import DriverOptionError
from imbue.machine.errors import HostNotRunningError
from imbue.machine.errors import UnsupportedOperationError
from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.interfaces.data_types import CreateFlag
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import FlagKind
from imbue.machine.primitives import HostState
from imbue.machine.remote.ssh_wait import is_ssh_banner_reachable
from imbue.machine.utils.net import build_engine_url
from imbue.machine.utils.polling import Deadline

GENERIC_DRIVER_NAME: Final = DriverName("generic")

GENERIC_CREATE_FLAGS: Final[tuple[CreateFlag, ...]] = (
    CreateFlag(
        name="generic-ip-address",
        kind=FlagKind.STRING,
        usage="IP address or hostname of the existing machine",
        env_var="GENERIC_IP_ADDRESS",
    ),
    CreateFlag(
        name="generic-ssh-user",
        kind=FlagKind.STRING,
        usage="SSH user",
        env_var="GENERIC_SSH_USER",
        default="root",
    ),
    CreateFlag(
        name="generic-ssh-key",
        kind=FlagKind.STRING,
        usage="SSH private key path; the SSH agent is used when unset",
        env_var="GENERIC_SSH_KEY",
    ),
    CreateFlag(
        name="generic-ssh-port",
        kind=FlagKind.INT,
        usage="SSH port",
        env_var="GENERIC_SSH_PORT",
        default=22,
    ),
)


class GenericDriver(DriverInterface):
    """An existing machine that is only reachable over SSH.

    Nothing is created or deleted on a backend. The host counts as RUNNING while its
    SSH server answers, and power transitions go through the remote shell.
    """

    ip_address: str = Field(frozen=True, description="Address of the machine")
    ssh_user: str = Field(default="root", frozen=True)
    ssh_key_source: Path | None = Field(
        default=None,
        frozen=True,
        description="Private key supplied by the user; copied into the host store on create",
    )
    ssh_port: int = Field(default=22, frozen=True)
    command_runner_factory: Callable[[DriverInterface], CommandRunnerInterface] = Field(
        frozen=True,
        repr=False,
        description="Builds the remote shell used for shutdown and reboot",
    )
    is_reachable: Callable[[str, int], bool] = Field(
        default=is_ssh_banner_reachable,
        frozen=True,
        repr=False,
        description="Whether an SSH server answers on an address and port",
    )

    @property
    def driver_name(self) -> DriverName:
        return GENERIC_DRIVER_NAME

    @staticmethod
    def get_create_flags() -> tuple[CreateFlag, ...]:
        return GENERIC_CREATE_FLAGS

    def get_ssh_hostname(self) -> str:
        return self.ip_address

    def get_ssh_port(self) -> int:
        return self.ssh_port

    def get_ssh_username(self) -> str:
        return self.ssh_user

    def get_ssh_key_path(self) -> Path | None:
        if self.ssh_key_source is None:
            return None
        return self.store_path / "id_rsa"

    def _run_power_command(self, command: str) -> None:
        # The connection usually drops while the machine goes down
        result = self.command_runner_factory(self).run(command, timeout_seconds=30)
        if not result.success:
            logger.warning("'{}' on {} exited unsuccessfully: {}", command, self.machine_name, result.stderr.strip())

    def pre_create_check(self) -> None:
        if not self.ip_address:
            raise DriverOptionError("generic-ip-address", "a value is required")
        if self.ssh_key_source is not None and not self.ssh_key_source.expanduser().is_file():
            raise DriverOptionError("generic-ssh-key", f"no such file: {self.ssh_key_source}")

    def create(self) -> None:
        if self.ssh_key_source is not None:
            key_path = self.store_path / "id_rsa"
            key_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self.ssh_key_source.expanduser(), key_path)
            key_path.chmod(0o600)
        logger.info("Importing existing machine {} at {}", self.machine_name, self.ip_address)

    def start(self) -> None:
        state = self.get_state()
        if state != HostState.RUNNING:
            raise UnsupportedOperationError(
                f"The generic driver cannot power on {self.machine_name}; start the machine out of band"
            )

    def stop(self) -> None:
        self._run_power_command("sudo shutdown -h now")

    def restart(self, deadline: Deadline | None = None) -> None:
        self._run_power_command("sudo shutdown -r now")

    def kill(self) -> None:
        self._run_power_command("sudo poweroff -f")

    def remove(self) -> None:
        logger.info("Forgetting {}; the machine at {} is left untouched", self.machine_name, self.ip_address)

    def upgrade(self) -> None:
        raise UnsupportedOperationError("upgrade is not supported for generic driver")

    def get_state(self) -> HostState:
        if self.is_reachable(self.ip_address, self.ssh_port):
            return HostState.RUNNING
        return HostState.STOPPED

    def get_ip(self) -> str:
        state = self.get_state()
        if state != HostState.RUNNING:
            raise HostNotRunningError(str(self.machine_name), state)
        return self.ip_address

    def get_url(self) -> str:
        return build_engine_url(self.get_ip(), self.engine_port)
