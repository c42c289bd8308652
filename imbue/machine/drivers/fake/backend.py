from collections.abc import Mapping
from pathlib import Path
from typing import Any

from imbue.machine import hookimpl
from imbue.machine.config.data_types import MachineContext
from imbue.machine.drivers.fake.driver import FAKE_DRIVER_NAME
from imbue.machine.drivers.fake.driver import FakeDriver
from imbue.machine.interfaces.data_types import CreateFlag
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.driver_backend import DriverBackendInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import HostName


class FakeDriverBackend(DriverBackendInterface):
    """Backend for the in-memory fake driver."""

    @staticmethod
    def get_name() -> DriverName:
        return FAKE_DRIVER_NAME

    @staticmethod
    def get_description() -> str:
        return "In-memory hosts that exist only inside this process (tests and dry runs)"

    @staticmethod
    def get_create_flags() -> tuple[CreateFlag, ...]:
        return FakeDriver.get_create_flags()

    @staticmethod
    def build_driver(
        machine_name: HostName,
        store_path: Path,
        options: Mapping[str, Any],
        engine_port: int,
        ctx: MachineContext,
    ) -> DriverInterface:
        return FakeDriver(
            machine_name=machine_name,
            store_path=store_path,
            engine_port=engine_port,
            poll_settings=ctx.config.polling,
            sleep=ctx.sleep,
            ip_addresses=tuple(options.get("fake-ip-address") or ()),
            ssh_username=options.get("fake-ssh-user") or "docker",
        )


@hookimpl
def register_driver_backend() -> type[DriverBackendInterface]:
    """Register the fake driver backend."""
    return FakeDriverBackend
