from collections.abc import Callable
from pathlib import PurePosixPath
from typing import Final

from loguru import logger
from pydantic import Field

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.config.data_types import EngineOptions
from imbue.machine.config.data_types import SwarmOptions
from imbue.machine.interfaces.provisioner import ProvisionerInterface
from imbue.machine.primitives import DaemonConfigShape
from imbue.machine.primitives import PackageAction
from imbue.machine.primitives import ProvisionerName
from imbue.machine.primitives import ProvisioningStep
from imbue.machine.primitives import ServiceAction
from imbue.machine.provision.daemon_config import DaemonConfigStrategyInterface
from imbue.machine.provision.engine_config import DaemonConfig
from imbue.machine.provision.engine_config import EngineConfigContext
from imbue.machine.provision.package import PackageManagerInterface
from imbue.machine.provision.package import ServiceManagerInterface
from imbue.machine.provision.steps import ALL_STEPS
from imbue.machine.provision.steps import GenericProvisioningSteps
from imbue.machine.utils.model_base import pure
from imbue.machine.utils.polling import Deadline
from imbue.machine.utils.shell import join_commands
from imbue.machine.utils.shell import quote

DEFAULT_DOCKER_OPTIONS_DIR: Final[PurePosixPath] = PurePosixPath("/etc/docker")


@pure
def build_generic_hostname_command(hostname: str) -> str:
    """Set the hostname and keep /etc/hostname and the 127.0.1.1 entry of /etc/hosts in sync."""
    quoted = quote(hostname)
    hosts_entry = quote(f"127.0.1.1 {hostname}")
    return join_commands(
        f"sudo hostname {quoted}",
        f"echo {quoted} | sudo tee /etc/hostname > /dev/null",
        f"if grep -xq '127.0.1.1.*' /etc/hosts; then sudo sed -i 's/^127.0.1.1.*/127.0.1.1 {hostname}/g' /etc/hosts;"
        f" else echo {hosts_entry} | sudo tee -a /etc/hosts > /dev/null; fi",
    )


@pure
def build_hostnamectl_command(hostname: str) -> str:
    return f"sudo hostnamectl set-hostname {quote(hostname)}"


@pure
def build_boot2docker_hostname_command(hostname: str) -> str:
    quoted = quote(hostname)
    return join_commands(
        f"sudo /usr/bin/sethostname {quoted}",
        f"echo {quoted} | sudo tee /var/lib/boot2docker/etc/hostname > /dev/null",
    )


class StandardProvisioner(ProvisionerInterface):
    """A provisioner assembled from per-OS strategies.

    Variants differ only in the strategies and settings they pass in; see
    provision/variants for the built-in combinations.
    """

    variant_name: ProvisionerName = Field(frozen=True, description="Name reported for this variant")
    package_manager: PackageManagerInterface = Field(frozen=True)
    service_manager: ServiceManagerInterface = Field(frozen=True)
    daemon_config_strategy: DaemonConfigStrategyInterface = Field(frozen=True)
    hostname_command_builder: Callable[[str], str] = Field(
        default=build_generic_hostname_command,
        frozen=True,
        description="Builds the command that sets the hostname",
    )
    docker_options_dir: PurePosixPath = Field(default=DEFAULT_DOCKER_OPTIONS_DIR, frozen=True)
    packages: tuple[str, ...] = Field(
        default=(),
        frozen=True,
        description="Packages the INSTALL_PACKAGES step installs",
    )
    engine_package: str | None = Field(
        default=None,
        frozen=True,
        description="OS package providing the engine; the install script is used when unset",
    )
    steps: tuple[ProvisioningStep, ...] = Field(default=ALL_STEPS, frozen=True, description="Steps run, in order")

    @property
    def name(self) -> ProvisionerName:
        return self.variant_name

    @property
    def daemon_config_shape(self) -> DaemonConfigShape:
        return self.daemon_config_strategy.shape

    def package(self, name: str, action: PackageAction) -> None:
        command = self.package_manager.build_command(name, action)
        if command is None:
            logger.debug("{}: package {} of {} is a no-op", self.variant_name, action, name)
            return
        self.runner.run_checked(command)

    def service(self, name: str, action: ServiceAction) -> None:
        command = self.service_manager.build_command(name, action)
        if command is None:
            logger.debug("{}: service {} of {} is a no-op", self.variant_name, action, name)
            return
        self.runner.run_checked(command)

    def set_hostname(self, hostname: str) -> None:
        self.runner.run_checked(self.hostname_command_builder(hostname))

    def get_docker_options_dir(self) -> PurePosixPath:
        return self.docker_options_dir

    def generate_docker_options(self, context: EngineConfigContext) -> DaemonConfig:
        return self.daemon_config_strategy.generate(context)

    def provision(
        self,
        swarm_options: SwarmOptions,
        auth_options: AuthOptions,
        engine_options: EngineOptions,
        deadline: Deadline | None = None,
    ) -> None:
        GenericProvisioningSteps(
            self,
            swarm_options,
            auth_options,
            engine_options,
            packages=self.packages,
            engine_package=self.engine_package,
            regenerate_certs=self.regenerate_certs,
            deadline=deadline,
        ).run(self.steps)
