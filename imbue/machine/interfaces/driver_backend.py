from abc import ABC
from abc import abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from imbue.machine.config.data_types import MachineContext
from imbue.machine.interfaces.data_types import CreateFlag
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import HostName
from imbue.machine.utils.model_base import MutableModel


class DriverBackendInterface(MutableModel, ABC):
    """Interface for driver backends.

    Driver backends are stateless factories that build driver instances.
    All methods are static since backends have no instance state.
    """

    @staticmethod
    @abstractmethod
    def get_name() -> DriverName:
        """Return the unique name of this backend (the driver name used in host configs)."""
        ...

    @staticmethod
    @abstractmethod
    def get_description() -> str:
        """Return a human-readable description of the backend."""
        ...

    @staticmethod
    @abstractmethod
    def get_create_flags() -> tuple[CreateFlag, ...]:
        """Return the options the backend's driver accepts at create time."""
        ...

    @staticmethod
    @abstractmethod
    def build_driver(
        machine_name: HostName,
        store_path: Path,
        options: Mapping[str, Any],
        engine_port: int,
        ctx: MachineContext,
    ) -> DriverInterface:
        """Build a driver for one host.

        options holds already-resolved values keyed by create flag name, with defaults applied.
        """
        ...
