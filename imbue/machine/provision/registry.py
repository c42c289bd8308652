"""Registry mapping detected operating systems to provisioner factories."""

import importlib
import threading
from collections.abc import Callable
from collections.abc import Sequence
from typing import Final

import pluggy
from loguru import logger
from pydantic import ConfigDict
from pydantic import Field

from imbue.machine.errors import ProvisionerRegistryFrozenError
from imbue.machine.errors import UnknownOperatingSystemError
from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.interfaces.data_types import HostOsInfo
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.provisioner import ProvisionerInterface
from imbue.machine.primitives import InitSystem
from imbue.machine.primitives import ProvisionerName
from imbue.machine.utils.model_base import FrozenModel

ProvisionerFactory = Callable[[DriverInterface, CommandRunnerInterface, HostOsInfo], ProvisionerInterface]

BUILTIN_PROVISIONERS_MODULE: Final[str] = "imbue.machine.provision.variants.builtin"


class ProvisionerRegistration(FrozenModel):
    """One registry entry: which hosts it matches and how to build its provisioner.

    Exactly one of os_release_id and family must be set. An entry with an init_system
    only matches hosts running that init system.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    name: ProvisionerName = Field(description="Provisioner name, e.g. 'ubuntu(systemd)'")
    os_release_id: str | None = Field(default=None, description="Exact os-release ID this entry matches")
    family: str | None = Field(default=None, description="ID_LIKE family this entry matches")
    init_system: InitSystem | None = Field(default=None, description="Required init system, if any")
    factory: ProvisionerFactory = Field(description="Builds the provisioner for a matched host")

    def matches_init_system(self, init_system: InitSystem) -> bool:
        return self.init_system is None or self.init_system == init_system


class ProvisionerRegistry:
    """Ordered provisioner registrations, read-only once frozen.

    Among equally specific matches the most recent registration wins, so plugins can
    replace a built-in entry.
    """

    def __init__(self) -> None:
        self._registrations: list[ProvisionerRegistration] = []
        self._is_frozen = False
        self._lock = threading.Lock()

    @property
    def is_frozen(self) -> bool:
        return self._is_frozen

    @property
    def registrations(self) -> tuple[ProvisionerRegistration, ...]:
        return tuple(self._registrations)

    def register(self, registration: ProvisionerRegistration) -> None:
        if (registration.os_release_id is None) == (registration.family is None):
            raise ValueError(f"Provisioner {registration.name} must match exactly one of os_release_id or family")
        with self._lock:
            if self._is_frozen:
                raise ProvisionerRegistryFrozenError(
                    f"Cannot register provisioner {registration.name}: the registry is frozen"
                )
            self._registrations.append(registration)

    def freeze(self) -> None:
        with self._lock:
            self._is_frozen = True

    def _best_of(
        self,
        candidates: Sequence[ProvisionerRegistration],
        init_system: InitSystem,
    ) -> ProvisionerRegistration | None:
        usable = [registration for registration in candidates if registration.matches_init_system(init_system)]
        constrained = [registration for registration in usable if registration.init_system is not None]
        if constrained:
            return constrained[-1]
        if usable:
            return usable[-1]
        return None

    def select(self, os_info: HostOsInfo) -> ProvisionerRegistration:
        """Pick the registration for a detected host.

        An exact os-release ID match wins; otherwise the ID_LIKE families are tried in
        order. Raises UnknownOperatingSystemError when nothing matches.
        """
        release = os_info.os_release
        exact = self._best_of(
            [registration for registration in self._registrations if registration.os_release_id == release.id],
            os_info.init_system,
        )
        if exact is not None:
            return exact

        for family in release.id_like:
            by_family = self._best_of(
                [registration for registration in self._registrations if registration.family == family],
                os_info.init_system,
            )
            if by_family is not None:
                return by_family

        raise UnknownOperatingSystemError(release.id, release.id_like)


def load_provisioners(pm: pluggy.PluginManager) -> ProvisionerRegistry:
    """Build the frozen registry from the built-in variants and every register_provisioners plugin.

    Built-ins are registered first so that plugin entries win ties against them.
    """
    builtin = importlib.import_module(BUILTIN_PROVISIONERS_MODULE)

    registry = ProvisionerRegistry()
    for registration in builtin.get_builtin_registrations():
        registry.register(registration)
    # pluggy calls the most recently registered plugin first
    for registrations in reversed(pm.hook.register_provisioners()):
        for registration in registrations:
            registry.register(registration)
    registry.freeze()
    logger.debug("Loaded {} provisioner registrations", len(registry.registrations))
    return registry
