from typing import Final

from loguru import logger

from imbue.machine.errors import UnknownOperatingSystemError
from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.interfaces.data_types import HostOsInfo
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.provisioner import ProvisionerInterface
from imbue.machine.provision.os_release import parse_init_system
from imbue.machine.provision.os_release import parse_os_release
from imbue.machine.provision.registry import ProvisionerRegistry

OS_RELEASE_PROBE: Final[str] = "cat /etc/os-release"

INIT_SYSTEM_PROBE: Final[str] = (
    "if [ -d /run/systemd/system ]; then echo systemd; "
    "elif /sbin/init --version 2>/dev/null | grep -q upstart; then echo upstart; "
    "else echo sysvinit; fi"
)


def detect_host_os(runner: CommandRunnerInterface) -> HostOsInfo:
    """Probe the host's os-release and init system. Both probes are read-only."""
    os_release_result = runner.run(OS_RELEASE_PROBE)
    if not os_release_result.success:
        raise UnknownOperatingSystemError("unknown", ())
    os_release = parse_os_release(os_release_result.stdout)

    init_result = runner.run(INIT_SYSTEM_PROBE)
    init_system = parse_init_system(init_result.stdout if init_result.success else "")

    logger.debug("Detected {} (family: {}) running {}", os_release.id, os_release.id_like, init_system)
    return HostOsInfo(os_release=os_release, init_system=init_system)


def detect_provisioner(
    driver: DriverInterface,
    runner: CommandRunnerInterface,
    registry: ProvisionerRegistry,
) -> ProvisionerInterface:
    """Detect the host's OS and build the matching provisioner.

    Raises UnknownOperatingSystemError if no registration matches; nothing is changed
    on the host in that case.
    """
    os_info = detect_host_os(runner)
    registration = registry.select(os_info)
    logger.info("Using provisioner {} for {}", registration.name, driver.machine_name)
    return registration.factory(driver, runner, os_info)
