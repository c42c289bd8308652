from imbue.machine.primitives import InitSystem
from imbue.machine.primitives import ProvisionerName
from imbue.machine.provision.daemon_config import FlatOptionsFileStrategy
from imbue.machine.provision.package import AptPackageManager
from imbue.machine.provision.package import SysvServiceManager
from imbue.machine.provision.registry import ProvisionerRegistration
from imbue.machine.provision.variants.common import make_standard_factory

DEBIAN_PACKAGES = ("curl",)


def get_registrations() -> tuple[ProvisionerRegistration, ...]:
    debian = make_standard_factory("debian", AptPackageManager(), packages=DEBIAN_PACKAGES)
    return (
        ProvisionerRegistration(
            name=ProvisionerName("ubuntu(systemd)"),
            os_release_id="ubuntu",
            init_system=InitSystem.SYSTEMD,
            factory=make_standard_factory("ubuntu(systemd)", AptPackageManager(), packages=DEBIAN_PACKAGES),
        ),
        ProvisionerRegistration(
            name=ProvisionerName("ubuntu(upstart)"),
            os_release_id="ubuntu",
            init_system=InitSystem.UPSTART,
            factory=make_standard_factory(
                "ubuntu(upstart)",
                AptPackageManager(),
                daemon_config_strategy=FlatOptionsFileStrategy(),
                service_manager=SysvServiceManager(),
                packages=DEBIAN_PACKAGES,
            ),
        ),
        ProvisionerRegistration(name=ProvisionerName("debian"), os_release_id="debian", factory=debian),
        ProvisionerRegistration(name=ProvisionerName("debian"), family="debian", factory=debian),
    )
