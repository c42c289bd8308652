import pluggy
import pytest

from imbue.machine import hookimpl
from imbue.machine.errors import ProvisionerRegistryFrozenError
from imbue.machine.errors import UnknownOperatingSystemError
from imbue.machine.primitives import InitSystem
from imbue.machine.primitives import ProvisionerName
from imbue.machine.provision.package import NoOpPackageManager
from imbue.machine.provision.registry import ProvisionerRegistration
from imbue.machine.provision.registry import ProvisionerRegistry
from imbue.machine.provision.registry import load_provisioners
from imbue.machine.provision.variants.common import make_standard_factory
from imbue.machine.utils.testing import make_os_info

_FACTORY = make_standard_factory("test", NoOpPackageManager())


def _registration(name: str, **kwargs) -> ProvisionerRegistration:
    return ProvisionerRegistration(name=ProvisionerName(name), factory=_FACTORY, **kwargs)


def test_exact_id_beats_family() -> None:
    registry = ProvisionerRegistry()
    registry.register(_registration("debian-family", family="debian"))
    registry.register(_registration("ubuntu", os_release_id="ubuntu"))

    assert registry.select(make_os_info("ubuntu", ("debian",))).name == "ubuntu"


def test_init_system_constrained_entry_outranks_unconstrained() -> None:
    registry = ProvisionerRegistry()
    registry.register(_registration("ubuntu-systemd", os_release_id="ubuntu", init_system=InitSystem.SYSTEMD))
    registry.register(_registration("ubuntu-any", os_release_id="ubuntu"))

    assert registry.select(make_os_info("ubuntu")).name == "ubuntu-systemd"
    assert registry.select(make_os_info("ubuntu", init_system=InitSystem.UPSTART)).name == "ubuntu-any"


def test_entry_for_other_init_system_never_matches() -> None:
    registry = ProvisionerRegistry()
    registry.register(_registration("ubuntu-upstart", os_release_id="ubuntu", init_system=InitSystem.UPSTART))
    registry.register(_registration("debian-family", family="debian"))

    assert registry.select(make_os_info("ubuntu", ("debian",))).name == "debian-family"


def test_families_are_tried_in_id_like_order() -> None:
    registry = ProvisionerRegistry()
    registry.register(_registration("fedora", family="fedora"))
    registry.register(_registration("rhel", family="rhel"))

    assert registry.select(make_os_info("rocky", ("rhel", "centos", "fedora"))).name == "rhel"


def test_unknown_os_raises() -> None:
    registry = ProvisionerRegistry()
    registry.register(_registration("debian", os_release_id="debian"))

    with pytest.raises(UnknownOperatingSystemError, match="gentoo"):
        registry.select(make_os_info("gentoo"))


def test_later_registration_wins_tie() -> None:
    registry = ProvisionerRegistry()
    registry.register(_registration("builtin-debian", os_release_id="debian"))
    registry.register(_registration("plugin-debian", os_release_id="debian"))

    assert registry.select(make_os_info("debian")).name == "plugin-debian"


def test_frozen_registry_rejects_registration() -> None:
    registry = ProvisionerRegistry()
    registry.freeze()

    with pytest.raises(ProvisionerRegistryFrozenError):
        registry.register(_registration("late", os_release_id="late"))


def test_registration_needs_exactly_one_predicate() -> None:
    registry = ProvisionerRegistry()

    with pytest.raises(ValueError):
        registry.register(_registration("both", os_release_id="a", family="b"))
    with pytest.raises(ValueError):
        registry.register(_registration("neither"))


class _CustomProvisionerPlugin:
    @hookimpl
    def register_provisioners(self) -> tuple[ProvisionerRegistration, ...]:
        return (_registration("custom-debian", os_release_id="debian"),)


def test_load_provisioners_includes_plugins_and_freezes(plugin_manager: pluggy.PluginManager) -> None:
    plugin_manager.register(_CustomProvisionerPlugin())

    registry = load_provisioners(plugin_manager)

    assert registry.is_frozen
    assert registry.select(make_os_info("debian")).name == "custom-debian"
    assert registry.select(make_os_info("cos")).name == "cos"
