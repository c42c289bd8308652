import time
from abc import ABC
from abc import abstractmethod
from collections.abc import Callable
from pathlib import Path

from pydantic import ConfigDict
from pydantic import Field

from imbue.machine.config.data_types import PollSettings
from imbue.machine.interfaces.data_types import CreateFlag
from imbue.machine.interfaces.data_types import SSHCredentials
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import HostName
from imbue.machine.primitives import HostState
from imbue.machine.utils.model_base import MutableModel
from imbue.machine.utils.polling import Deadline


class DriverInterface(MutableModel, ABC):
    """Backend-agnostic lifecycle contract for one virtual host.

    A driver instance is owned by exactly one Host and holds that host's backend
    credentials and identifiers. Every transition-dependent decision is made from a
    live get_state() query; drivers never answer from a cached state.

    Backend errors propagate unchanged, except where an operation documents that it
    tolerates them (e.g. remove() treating "already deleted" as success).
    """

    model_config = ConfigDict(frozen=False, extra="forbid", arbitrary_types_allowed=True)

    machine_name: HostName = Field(frozen=True, description="Name of the host this driver manages")
    store_path: Path = Field(frozen=True, description="Per-host local directory for keys, boot media and certs")
    engine_port: int = Field(default=2376, frozen=True, description="Port the engine daemon listens on")
    poll_settings: PollSettings = Field(
        default_factory=PollSettings,
        frozen=True,
        description="Budgets for the bounded waits inside lifecycle transitions",
    )
    sleep: Callable[[float], None] = Field(
        default=time.sleep,
        frozen=True,
        repr=False,
        description="Sleep function used between polls",
    )

    # =========================================================================
    # Metadata
    # =========================================================================

    @property
    @abstractmethod
    def driver_name(self) -> DriverName:
        """Name of the backend this driver talks to."""

    @staticmethod
    @abstractmethod
    def get_create_flags() -> tuple[CreateFlag, ...]:
        """Options this driver accepts at create time."""

    def get_machine_name(self) -> HostName:
        return self.machine_name

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    def pre_create_check(self) -> None:
        """Validate every backend resource the configuration references.

        Must not create, modify or delete anything.
        """

    @abstractmethod
    def create(self) -> None:
        """Create the virtual machine and boot it from the guest image.

        Called at most once per host. On return the host is RUNNING, or ERROR if the
        backend failed after the VM object was created.
        """

    @abstractmethod
    def start(self) -> None:
        """Power the host on. A host that is already RUNNING is left untouched."""

    @abstractmethod
    def stop(self) -> None:
        """Gracefully shut the host down."""

    @abstractmethod
    def restart(self, deadline: Deadline | None = None) -> None:
        """Stop the host and start it again, forcing a power-off if the graceful stop stalls."""

    @abstractmethod
    def kill(self) -> None:
        """Force the host off."""

    @abstractmethod
    def remove(self) -> None:
        """Delete the host, its disks and its boot media, powering it off first if needed."""

    @abstractmethod
    def upgrade(self) -> None:
        """Upgrade the guest image in place. Raises UnsupportedOperationError where not implemented."""

    # =========================================================================
    # Queries
    # =========================================================================

    @abstractmethod
    def get_state(self) -> HostState:
        """Query the backend for the host's current state."""

    @abstractmethod
    def get_ip(self) -> str:
        """The address the host is reached on.

        Raises HostNotRunningError unless the host is RUNNING.
        """

    @abstractmethod
    def get_url(self) -> str:
        """The engine endpoint (tcp://<ip>:<port>), or the empty string if no address is assigned yet."""

    # =========================================================================
    # Remote shell
    # =========================================================================

    def get_ssh_hostname(self) -> str:
        return self.get_ip()

    def get_ssh_port(self) -> int:
        return 22

    @abstractmethod
    def get_ssh_username(self) -> str:
        """Remote user for the provisioning shell."""

    def get_ssh_key_path(self) -> Path | None:
        return self.store_path / "id_rsa"

    def get_ssh_credentials(self) -> SSHCredentials:
        return SSHCredentials(
            hostname=self.get_ssh_hostname(),
            port=self.get_ssh_port(),
            username=self.get_ssh_username(),
            key_path=self.get_ssh_key_path(),
        )
