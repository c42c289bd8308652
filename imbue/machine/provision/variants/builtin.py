from imbue.machine.provision.registry import ProvisionerRegistration
from imbue.machine.provision.variants import arch
from imbue.machine.provision.variants import boot2docker
from imbue.machine.provision.variants import cos
from imbue.machine.provision.variants import debian
from imbue.machine.provision.variants import redhat
from imbue.machine.provision.variants import suse


def get_builtin_registrations() -> tuple[ProvisionerRegistration, ...]:
    """Every provisioner variant that ships with machine."""
    return (
        *boot2docker.get_registrations(),
        *debian.get_registrations(),
        *redhat.get_registrations(),
        *arch.get_registrations(),
        *suse.get_registrations(),
        *cos.get_registrations(),
    )
