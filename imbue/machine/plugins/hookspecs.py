from collections.abc import Sequence
from typing import Any

import pluggy

from imbue.machine.interfaces.driver_backend import DriverBackendInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import HostName
from imbue.machine.provision.registry import ProvisionerRegistration

hookspec = pluggy.HookspecMarker("machine")


@hookspec
def register_driver_backend() -> type[DriverBackendInterface] | None:
    """Register a driver backend.

    Plugins should implement this hook to register driver backends.
    Return the backend class to register it, or None if not registering a backend.
    """


@hookspec
def register_provisioners() -> Sequence[ProvisionerRegistration]:
    """Register OS provisioners in addition to the built-in ones.

    Called once while the provisioner registry is being loaded, before it is frozen.
    """


@hookspec(firstresult=True)
def provide_backend_client(driver_name: DriverName) -> Any | None:
    """Supply the API client a driver backend talks to.

    Backends whose wire protocol is not built in (e.g. the vSphere API) ask for their
    client through this hook. Return None if this plugin does not serve driver_name.
    """


@hookspec
def on_host_created(host_name: HostName, driver_name: DriverName) -> None:
    """Called after a host has been created and provisioned by the create action."""


@hookspec
def on_host_provisioned(host_name: HostName, provisioner_name: str) -> None:
    """Called after a provisioning run completed on a host."""
