from imbue.machine.primitives import ProvisionerName
from imbue.machine.provision.package import RpmPackageManager
from imbue.machine.provision.registry import ProvisionerFactory
from imbue.machine.provision.registry import ProvisionerRegistration
from imbue.machine.provision.standard import build_hostnamectl_command
from imbue.machine.provision.variants.common import make_standard_factory

REDHAT_PACKAGES = ("curl",)


def get_registrations() -> tuple[ProvisionerRegistration, ...]:
    def _factory(name: str, binary: str) -> ProvisionerFactory:
        return make_standard_factory(
            name,
            RpmPackageManager(binary=binary),
            hostname_command_builder=build_hostnamectl_command,
            packages=REDHAT_PACKAGES,
        )

    rhel = _factory("redhat", "yum")
    centos = _factory("centos", "yum")
    fedora = _factory("fedora", "dnf")
    return (
        ProvisionerRegistration(name=ProvisionerName("redhat"), os_release_id="rhel", factory=rhel),
        ProvisionerRegistration(name=ProvisionerName("centos"), os_release_id="centos", factory=centos),
        ProvisionerRegistration(name=ProvisionerName("fedora"), os_release_id="fedora", factory=fedora),
        ProvisionerRegistration(name=ProvisionerName("redhat"), family="rhel", factory=rhel),
        ProvisionerRegistration(name=ProvisionerName("fedora"), family="fedora", factory=fedora),
    )
