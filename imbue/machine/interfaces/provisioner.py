from abc import ABC
from abc import abstractmethod
from pathlib import PurePosixPath

from pydantic import ConfigDict
from pydantic import Field

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.config.data_types import EngineOptions
from imbue.machine.config.data_types import SwarmOptions
from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.interfaces.data_types import HostOsInfo
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.primitives import DaemonConfigShape
from imbue.machine.primitives import PackageAction
from imbue.machine.primitives import ProvisionerName
from imbue.machine.primitives import ServiceAction
from imbue.machine.provision.engine_config import DaemonConfig
from imbue.machine.provision.engine_config import EngineConfigContext
from imbue.machine.utils.model_base import MutableModel
from imbue.machine.utils.polling import Deadline


class ProvisionerInterface(MutableModel, ABC):
    """Configures a freshly booted host into a ready engine node.

    A provisioner is bound to one host's driver and command runner for the duration
    of a single provisioning run.
    """

    model_config = ConfigDict(frozen=False, extra="forbid", arbitrary_types_allowed=True)

    driver: DriverInterface = Field(frozen=True, description="Driver of the host being provisioned")
    runner: CommandRunnerInterface = Field(frozen=True, description="Remote shell on the host")
    os_info: HostOsInfo = Field(frozen=True, description="What detection learned about the host")
    regenerate_certs: bool = Field(
        default=False,
        description="Replace the host's certificate set even if it is usable",
    )

    @property
    @abstractmethod
    def name(self) -> ProvisionerName:
        """Name of this provisioner variant, e.g. 'ubuntu(systemd)'."""

    @property
    @abstractmethod
    def daemon_config_shape(self) -> DaemonConfigShape:
        """Which daemon configuration shape this provisioner writes."""

    @abstractmethod
    def package(self, name: str, action: PackageAction) -> None:
        """Install, remove or upgrade an OS package. May be a deliberate no-op."""

    @abstractmethod
    def service(self, name: str, action: ServiceAction) -> None:
        """Drive an init-system service."""

    @abstractmethod
    def set_hostname(self, hostname: str) -> None:
        """Set the host's hostname persistently."""

    @abstractmethod
    def get_docker_options_dir(self) -> PurePosixPath:
        """Remote directory holding the daemon's TLS material and options."""

    @abstractmethod
    def generate_docker_options(self, context: EngineConfigContext) -> DaemonConfig:
        """Render the daemon configuration artifacts without touching the host."""

    @abstractmethod
    def provision(
        self,
        swarm_options: SwarmOptions,
        auth_options: AuthOptions,
        engine_options: EngineOptions,
        deadline: Deadline | None = None,
    ) -> None:
        """Run the setup pipeline in order, stopping at the first failing step.

        Raises ProvisioningStepFailedError naming the failed step.
        """
