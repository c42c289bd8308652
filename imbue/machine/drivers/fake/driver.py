from pydantic import Field

from imbue.machine.drivers.lifecycle import restart_policy
from imbue.machine.drivers.lifecycle import restart_with_fallback
from imbue.machine.errors import BackendUnavailableError
from imbue.machine.errors import HostNotRunningError
from imbue.machine.errors import UnsupportedOperationError
from imbue.machine.interfaces.data_types import CreateFlag
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import FlagKind
from imbue.machine.primitives import HostState
from imbue.machine.utils.net import build_engine_url
from imbue.machine.utils.net import select_preferred_ip
from imbue.machine.utils.polling import Deadline

FAKE_DRIVER_NAME = DriverName("fake")


class FakeDriver(DriverInterface):
    """In-memory driver for tests and dry runs.

    Every backend call is appended to `calls`. get_state() answers from `state_script`
    while it is non-empty, then from `state`.
    """

    state: HostState = Field(default=HostState.NONE, description="Current simulated state")
    ip_addresses: tuple[str, ...] = Field(default=("10.0.0.10",), description="Addresses the guest reports")
    ssh_username: str = Field(default="docker", description="Remote user")
    ignores_graceful_stop: bool = Field(default=False, description="stop() leaves the host running")
    state_script: list[HostState] = Field(default_factory=list, description="States returned before `state`")
    failing_operations: dict[str, str] = Field(
        default_factory=dict,
        description="Operation name -> message of the BackendUnavailableError it raises",
    )
    calls: list[str] = Field(default_factory=list, description="Backend calls, in order")

    @property
    def driver_name(self) -> DriverName:
        return FAKE_DRIVER_NAME

    @staticmethod
    def get_create_flags() -> tuple[CreateFlag, ...]:
        return (
            CreateFlag(
                name="fake-ip-address",
                kind=FlagKind.STRING_LIST,
                usage="Addresses the fake guest reports",
                env_var="FAKE_IP_ADDRESS",
                default=("10.0.0.10",),
            ),
            CreateFlag(
                name="fake-ssh-user",
                kind=FlagKind.STRING,
                usage="Remote user of the fake guest",
                env_var="FAKE_SSH_USER",
                default="docker",
            ),
        )

    def _call(self, operation: str) -> None:
        self.calls.append(operation)
        message = self.failing_operations.get(operation)
        if message is not None:
            raise BackendUnavailableError(message)

    def pre_create_check(self) -> None:
        self._call("pre_create_check")

    def create(self) -> None:
        self._call("create")
        self.state = HostState.RUNNING

    def start(self) -> None:
        if self.get_state() == HostState.RUNNING:
            return
        self._call("power_on")
        self.state = HostState.RUNNING

    def stop(self) -> None:
        self._call("stop")
        if not self.ignores_graceful_stop:
            self.state = HostState.STOPPED

    def restart(self, deadline: Deadline | None = None) -> None:
        restart_with_fallback(self, restart_policy(self.poll_settings), self.sleep, deadline)

    def kill(self) -> None:
        self._call("kill")
        self.state = HostState.STOPPED

    def remove(self) -> None:
        if self.get_state() == HostState.RUNNING:
            self.kill()
        self._call("remove")
        self.state = HostState.NONE

    def upgrade(self) -> None:
        raise UnsupportedOperationError("upgrade is not supported for fake driver")

    def get_state(self) -> HostState:
        self._call("get_state")
        if self.state_script:
            return self.state_script.pop(0)
        return self.state

    def get_ip(self) -> str:
        state = self.get_state()
        if state != HostState.RUNNING:
            raise HostNotRunningError(str(self.machine_name), state)
        return select_preferred_ip(self.ip_addresses)

    def get_url(self) -> str:
        return build_engine_url(self.get_ip(), self.engine_port)

    def get_ssh_username(self) -> str:
        return self.ssh_username

    def backend_calls(self) -> list[str]:
        """Calls other than state queries."""
        return [call for call in self.calls if call != "get_state"]
