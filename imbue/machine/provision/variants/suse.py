from imbue.machine.primitives import ProvisionerName
from imbue.machine.provision.package import ZypperPackageManager
from imbue.machine.provision.registry import ProvisionerRegistration
from imbue.machine.provision.variants.common import make_standard_factory


def get_registrations() -> tuple[ProvisionerRegistration, ...]:
    opensuse = make_standard_factory("opensuse", ZypperPackageManager(), packages=("curl",), engine_package="docker")
    sles = make_standard_factory("sles", ZypperPackageManager(), packages=("curl",), engine_package="docker")
    return (
        ProvisionerRegistration(name=ProvisionerName("opensuse"), os_release_id="opensuse", factory=opensuse),
        ProvisionerRegistration(name=ProvisionerName("opensuse"), os_release_id="opensuse-leap", factory=opensuse),
        ProvisionerRegistration(
            name=ProvisionerName("opensuse"),
            os_release_id="opensuse-tumbleweed",
            factory=opensuse,
        ),
        ProvisionerRegistration(name=ProvisionerName("sles"), os_release_id="sles", factory=sles),
        ProvisionerRegistration(name=ProvisionerName("opensuse"), family="suse", factory=opensuse),
    )
