"""OS package managers and init-system service managers, as shell command builders.

A builder returning None means the action is deliberately a no-op on that system.
"""

from abc import ABC
from abc import abstractmethod

from pydantic import Field

from imbue.machine.primitives import PackageAction
from imbue.machine.primitives import ServiceAction
from imbue.machine.utils.model_base import FrozenModel
from imbue.machine.utils.shell import join_commands
from imbue.machine.utils.shell import quote


class PackageManagerInterface(FrozenModel, ABC):
    @abstractmethod
    def build_command(self, name: str, action: PackageAction) -> str | None:
        ...


class AptPackageManager(PackageManagerInterface):
    def build_command(self, name: str, action: PackageAction) -> str | None:
        apt_get = "sudo DEBIAN_FRONTEND=noninteractive apt-get"
        match action:
            case PackageAction.INSTALL:
                return join_commands(f"{apt_get} update -qq", f"{apt_get} install -y {quote(name)}")
            case PackageAction.UPGRADE:
                return join_commands(f"{apt_get} update -qq", f"{apt_get} install -y --only-upgrade {quote(name)}")
            case PackageAction.REMOVE:
                return f"{apt_get} remove -y {quote(name)}"


class RpmPackageManager(PackageManagerInterface):
    """yum and dnf share their command line."""

    binary: str = Field(default="yum", description="'yum' or 'dnf'")

    def build_command(self, name: str, action: PackageAction) -> str | None:
        verb = {PackageAction.INSTALL: "install", PackageAction.REMOVE: "remove", PackageAction.UPGRADE: "upgrade"}
        return f"sudo {self.binary} {verb[action]} -y {quote(name)}"


class PacmanPackageManager(PackageManagerInterface):
    def build_command(self, name: str, action: PackageAction) -> str | None:
        match action:
            case PackageAction.INSTALL:
                return f"sudo pacman -S --noconfirm --needed {quote(name)}"
            case PackageAction.UPGRADE:
                return f"sudo pacman -Sy --noconfirm {quote(name)}"
            case PackageAction.REMOVE:
                return f"sudo pacman -R --noconfirm {quote(name)}"


class ZypperPackageManager(PackageManagerInterface):
    def build_command(self, name: str, action: PackageAction) -> str | None:
        verb = {PackageAction.INSTALL: "install", PackageAction.REMOVE: "remove", PackageAction.UPGRADE: "update"}
        return f"sudo zypper -n {verb[action]} {quote(name)}"


class NoOpPackageManager(PackageManagerInterface):
    """For immutable images that cannot install packages."""

    def build_command(self, name: str, action: PackageAction) -> str | None:
        return None


class ServiceManagerInterface(FrozenModel, ABC):
    @abstractmethod
    def build_command(self, name: str, action: ServiceAction) -> str | None:
        ...


class SystemdServiceManager(ServiceManagerInterface):
    def build_command(self, name: str, action: ServiceAction) -> str | None:
        return f"sudo systemctl {action.value.lower()} {quote(name)}"


class SysvServiceManager(ServiceManagerInterface):
    """The `service` wrapper used by sysvinit and upstart systems; boot-time enablement is left alone."""

    def build_command(self, name: str, action: ServiceAction) -> str | None:
        if action in (ServiceAction.ENABLE, ServiceAction.DISABLE):
            return None
        return f"sudo service {quote(name)} {action.value.lower()}"


class InitScriptServiceManager(ServiceManagerInterface):
    """Services driven through their /etc/init.d scripts (boot2docker)."""

    def build_command(self, name: str, action: ServiceAction) -> str | None:
        if action in (ServiceAction.ENABLE, ServiceAction.DISABLE):
            return None
        return f"sudo /etc/init.d/{name} {action.value.lower()}"
