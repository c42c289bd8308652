from pathlib import PurePosixPath

from imbue.machine.primitives import ProvisionerName
from imbue.machine.provision.daemon_config import Boot2DockerProfileStrategy
from imbue.machine.provision.package import InitScriptServiceManager
from imbue.machine.provision.package import NoOpPackageManager
from imbue.machine.provision.registry import ProvisionerRegistration
from imbue.machine.provision.standard import build_boot2docker_hostname_command
from imbue.machine.provision.steps import IMMUTABLE_IMAGE_STEPS
from imbue.machine.provision.variants.common import make_standard_factory

BOOT2DOCKER_OPTIONS_DIR = PurePosixPath("/var/lib/boot2docker")


def get_registrations() -> tuple[ProvisionerRegistration, ...]:
    return (
        ProvisionerRegistration(
            name=ProvisionerName("boot2docker"),
            os_release_id="boot2docker",
            factory=make_standard_factory(
                "boot2docker",
                NoOpPackageManager(),
                daemon_config_strategy=Boot2DockerProfileStrategy(),
                service_manager=InitScriptServiceManager(),
                hostname_command_builder=build_boot2docker_hostname_command,
                docker_options_dir=BOOT2DOCKER_OPTIONS_DIR,
                steps=IMMUTABLE_IMAGE_STEPS,
            ),
        ),
    )
