from collections.abc import Mapping
from pathlib import Path
from typing import Any

from imbue.machine import hookimpl
from imbue.machine.config.data_types import MachineContext
from imbue.machine.drivers.generic.driver import GENERIC_CREATE_FLAGS
from imbue.machine.drivers.generic.driver import GENERIC_DRIVER_NAME
from imbue.machine.drivers.generic.driver import GenericDriver
from imbue.machine.interfaces.data_types import CreateFlag
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.driver_backend import DriverBackendInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import HostName


class GenericDriverBackend(DriverBackendInterface):
    """Backend for existing machines reached over SSH."""

    @staticmethod
    def get_name() -> DriverName:
        return GENERIC_DRIVER_NAME

    @staticmethod
    def get_description() -> str:
        return "An existing machine reachable over SSH"

    @staticmethod
    def get_create_flags() -> tuple[CreateFlag, ...]:
        return GENERIC_CREATE_FLAGS

    @staticmethod
    def build_driver(
        machine_name: HostName,
        store_path: Path,
        options: Mapping[str, Any],
        engine_port: int,
        ctx: MachineContext,
    ) -> DriverInterface:
        ssh_key = options.get("generic-ssh-key")
        return GenericDriver(
            machine_name=machine_name,
            store_path=store_path,
            engine_port=engine_port,
            poll_settings=ctx.config.polling,
            sleep=ctx.sleep,
            ip_address=options.get("generic-ip-address") or "",
            ssh_user=options.get("generic-ssh-user") or "root",
            ssh_key_source=Path(ssh_key) if ssh_key else None,
            ssh_port=options.get("generic-ssh-port") or 22,
            command_runner_factory=ctx.command_runner_factory,
        )


@hookimpl
def register_driver_backend() -> type[DriverBackendInterface]:
    """Register the generic driver backend."""
    return GenericDriverBackend
