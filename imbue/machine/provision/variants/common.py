from typing import Any

from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.interfaces.data_types import HostOsInfo
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.primitives import InitSystem
from imbue.machine.primitives import ProvisionerName
from imbue.machine.provision.daemon_config import DaemonConfigStrategyInterface
from imbue.machine.provision.daemon_config import select_daemon_config_strategy
from imbue.machine.provision.package import PackageManagerInterface
from imbue.machine.provision.package import ServiceManagerInterface
from imbue.machine.provision.package import SystemdServiceManager
from imbue.machine.provision.package import SysvServiceManager
from imbue.machine.provision.registry import ProvisionerFactory
from imbue.machine.provision.standard import StandardProvisioner


def service_manager_for(init_system: InitSystem) -> ServiceManagerInterface:
    if init_system == InitSystem.SYSTEMD:
        return SystemdServiceManager()
    return SysvServiceManager()


def make_standard_factory(
    name: str,
    package_manager: PackageManagerInterface,
    daemon_config_strategy: DaemonConfigStrategyInterface | None = None,
    service_manager: ServiceManagerInterface | None = None,
    **settings: Any,
) -> ProvisionerFactory:
    """A factory for a StandardProvisioner variant.

    The daemon config strategy and service manager follow the detected init system
    unless the variant pins them.
    """

    def factory(driver: DriverInterface, runner: CommandRunnerInterface, os_info: HostOsInfo) -> StandardProvisioner:
        return StandardProvisioner(
            driver=driver,
            runner=runner,
            os_info=os_info,
            variant_name=ProvisionerName(name),
            package_manager=package_manager,
            service_manager=service_manager or service_manager_for(os_info.init_system),
            daemon_config_strategy=daemon_config_strategy or select_daemon_config_strategy(os_info.init_system),
            **settings,
        )

    return factory

