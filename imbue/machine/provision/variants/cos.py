"""Container-Optimized OS: a read-only systemd image that already ships the engine."""

from imbue.machine.primitives import ProvisionerName
from imbue.machine.provision.daemon_config import FlatOptionsFileStrategy
from imbue.machine.provision.package import NoOpPackageManager
from imbue.machine.provision.package import SystemdServiceManager
from imbue.machine.provision.registry import ProvisionerRegistration
from imbue.machine.provision.standard import build_hostnamectl_command
from imbue.machine.provision.steps import IMMUTABLE_IMAGE_STEPS
from imbue.machine.provision.variants.common import make_standard_factory


def get_registrations() -> tuple[ProvisionerRegistration, ...]:
    return (
        ProvisionerRegistration(
            name=ProvisionerName("cos"),
            os_release_id="cos",
            factory=make_standard_factory(
                "cos",
                NoOpPackageManager(),
                # /etc/default/docker rather than a systemd override
                daemon_config_strategy=FlatOptionsFileStrategy(),
                service_manager=SystemdServiceManager(),
                hostname_command_builder=build_hostnamectl_command,
                steps=IMMUTABLE_IMAGE_STEPS,
            ),
        ),
    )
