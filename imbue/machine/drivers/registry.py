import importlib

import pluggy

from imbue.machine.errors import UnknownDriverError
from imbue.machine.interfaces.driver_backend import DriverBackendInterface
from imbue.machine.primitives import DriverName

# Cache for registered backends
backend_registry: dict[DriverName, type[DriverBackendInterface]] = {}

# Maps driver names to their module paths for on-demand loading
BACKEND_MODULES: dict[str, str] = {
    "fake": "imbue.machine.drivers.fake.backend",
    "generic": "imbue.machine.drivers.generic.backend",
    "vmwarevsphere": "imbue.machine.drivers.vsphere.backend",
    "vmwarefusion": "imbue.machine.drivers.not_supported",
}


def _load_single_backend(pm: pluggy.PluginManager, name: str) -> None:
    """Load a single backend module and register it via the plugin manager."""
    module_path = BACKEND_MODULES.get(name)
    if module_path is None:
        return
    module = importlib.import_module(module_path)
    if not pm.is_registered(module):
        pm.register(module, name=f"driver-{name}")
    _collect_registrations(pm)


def _collect_registrations(pm: pluggy.PluginManager) -> None:
    # Call hook and register only newly-discovered backends
    for backend_class in pm.hook.register_driver_backend():
        if backend_class is not None:
            backend_name = backend_class.get_name()
            if backend_name not in backend_registry:
                backend_registry[backend_name] = backend_class


def load_all_backends(pm: pluggy.PluginManager) -> None:
    """Load every built-in backend plus any registered by plugins. Used by 'machine drivers'."""
    for name in BACKEND_MODULES:
        _load_single_backend(pm, name)
    _collect_registrations(pm)


def reset_backend_registry() -> None:
    """Reset the backend registry to its initial state, for test isolation."""
    backend_registry.clear()


def get_backend(name: str | DriverName, pm: pluggy.PluginManager) -> type[DriverBackendInterface]:
    """Get a driver backend class by name, loading it on demand if needed."""
    key = DriverName(name)
    if key not in backend_registry:
        _load_single_backend(pm, str(key))
    if key not in backend_registry:
        _collect_registrations(pm)
    if key not in backend_registry:
        available = sorted(set(BACKEND_MODULES) | {str(k) for k in backend_registry})
        raise UnknownDriverError(key, available)
    return backend_registry[key]
