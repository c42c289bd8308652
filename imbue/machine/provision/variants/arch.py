from imbue.machine.primitives import ProvisionerName
from imbue.machine.provision.package import PacmanPackageManager
from imbue.machine.provision.registry import ProvisionerRegistration
from imbue.machine.provision.variants.common import make_standard_factory


def get_registrations() -> tuple[ProvisionerRegistration, ...]:
    arch = make_standard_factory(
        "arch",
        PacmanPackageManager(),
        packages=("curl",),
        engine_package="docker",
    )
    return (
        ProvisionerRegistration(name=ProvisionerName("arch"), os_release_id="arch", factory=arch),
        ProvisionerRegistration(name=ProvisionerName("arch"), family="arch", factory=arch),
    )
