from collections.abc import Mapping
from pathlib import Path
from typing import Any

from imbue.machine import hookimpl
from imbue.machine.config.data_types import MachineContext
from imbue.machine.drivers.vsphere.client import VSphereClientInterface
from imbue.machine.drivers.vsphere.config import VSPHERE_CREATE_FLAGS
from imbue.machine.drivers.vsphere.config import VSPHERE_DRIVER_NAME
from imbue.machine.drivers.vsphere.config import VSphereDriverConfig
from imbue.machine.drivers.vsphere.driver import VSphereDriver
from imbue.machine.errors import BackendUnavailableError
from imbue.machine.interfaces.data_types import CreateFlag
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.driver_backend import DriverBackendInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import HostName


class VSphereBackendClientUnavailableError(BackendUnavailableError):
    """No plugin supplies a vSphere API client."""

    user_help_text = "Install a plugin that implements provide_backend_client for the vmwarevsphere driver."


class VSphereDriverBackend(DriverBackendInterface):
    """Backend for VMware vSphere (vCenter or standalone ESX)."""

    @staticmethod
    def get_name() -> DriverName:
        return VSPHERE_DRIVER_NAME

    @staticmethod
    def get_description() -> str:
        return "Virtual machines on VMware vSphere running the boot2docker guest image"

    @staticmethod
    def get_create_flags() -> tuple[CreateFlag, ...]:
        return VSPHERE_CREATE_FLAGS

    @staticmethod
    def build_driver(
        machine_name: HostName,
        store_path: Path,
        options: Mapping[str, Any],
        engine_port: int,
        ctx: MachineContext,
    ) -> DriverInterface:
        client = ctx.pm.hook.provide_backend_client(driver_name=VSPHERE_DRIVER_NAME)
        if client is None:
            raise VSphereBackendClientUnavailableError("No vSphere API client is available")
        if not isinstance(client, VSphereClientInterface):
            raise VSphereBackendClientUnavailableError(
                f"The vSphere API client supplied by a plugin has the wrong type: {type(client).__name__}"
            )
        return VSphereDriver(
            machine_name=machine_name,
            store_path=store_path,
            engine_port=engine_port,
            poll_settings=ctx.config.polling,
            sleep=ctx.sleep,
            config=VSphereDriverConfig.from_options(options),
            client=client,
        )


@hookimpl
def register_driver_backend() -> type[DriverBackendInterface]:
    """Register the vSphere driver backend."""
    return VSphereDriverBackend
