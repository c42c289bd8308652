"""Placeholder drivers for backends that cannot run on the current platform.

Host records that name such a backend can still be loaded and inspected; every
operation that would touch the backend fails with UnsupportedOperationError.
"""

import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import Field

from imbue.machine import hookimpl
from imbue.machine.config.data_types import MachineContext
from imbue.machine.errors import UnsupportedOperationError
from imbue.machine.interfaces.data_types import CreateFlag
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.driver_backend import DriverBackendInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import HostName
from imbue.machine.primitives import HostState
from imbue.machine.utils.polling import Deadline

VMWARE_FUSION_DRIVER_NAME = DriverName("vmwarefusion")


class NotSupportedDriver(DriverInterface):
    """Driver for a backend that is not available on this platform."""

    backend_name: DriverName = Field(frozen=True, description="Name of the unavailable backend")

    @property
    def driver_name(self) -> DriverName:
        return self.backend_name

    @staticmethod
    def get_create_flags() -> tuple[CreateFlag, ...]:
        return ()

    def _unsupported(self) -> UnsupportedOperationError:
        return UnsupportedOperationError(f"Driver {self.backend_name} is not supported on {sys.platform}")

    def pre_create_check(self) -> None:
        raise self._unsupported()

    def create(self) -> None:
        raise self._unsupported()

    def start(self) -> None:
        raise self._unsupported()

    def stop(self) -> None:
        raise self._unsupported()

    def restart(self, deadline: Deadline | None = None) -> None:
        raise self._unsupported()

    def kill(self) -> None:
        raise self._unsupported()

    def remove(self) -> None:
        raise self._unsupported()

    def upgrade(self) -> None:
        raise self._unsupported()

    def get_state(self) -> HostState:
        return HostState.NONE

    def get_ip(self) -> str:
        raise self._unsupported()

    def get_url(self) -> str:
        raise self._unsupported()

    def get_ssh_username(self) -> str:
        raise self._unsupported()


class VMwareFusionNotSupportedBackend(DriverBackendInterface):
    """VMware Fusion only runs on macOS."""

    @staticmethod
    def get_name() -> DriverName:
        return VMWARE_FUSION_DRIVER_NAME

    @staticmethod
    def get_description() -> str:
        return "VMware Fusion (macOS only; not supported on this platform)"

    @staticmethod
    def get_create_flags() -> tuple[CreateFlag, ...]:
        return ()

    @staticmethod
    def build_driver(
        machine_name: HostName,
        store_path: Path,
        options: Mapping[str, Any],
        engine_port: int,
        ctx: MachineContext,
    ) -> DriverInterface:
        return NotSupportedDriver(
            machine_name=machine_name,
            store_path=store_path,
            engine_port=engine_port,
            backend_name=VMWARE_FUSION_DRIVER_NAME,
        )


@hookimpl
def register_driver_backend() -> type[DriverBackendInterface] | None:
    """Register the Fusion placeholder everywhere except macOS."""
    if sys.platform == "darwin":
        return None
    return VMwareFusionNotSupportedBackend
