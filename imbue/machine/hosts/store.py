import os
import threading
from abc import ABC
from abc import abstractmethod
from collections.abc import Mapping

from loguru import logger

from imbue.machine.config.data_types import MachineContext
from imbue.machine.drivers.options import resolve_create_options
from imbue.machine.drivers.registry import get_backend
from imbue.machine.errors import HostNotFoundError
from imbue.machine.hosts.host import Host
from imbue.machine.primitives import HostName


class HostStoreInterface(ABC):
    """Resolves host names to Host objects.

    A store hands out the same Host instance for a name every time, so each host has
    exactly one writer within a process.
    """

    @abstractmethod
    def get_host(self, name: HostName) -> Host:
        """Raises HostNotFoundError for unknown names."""

    @abstractmethod
    def list_host_names(self) -> tuple[HostName, ...]:
        ...


class InMemoryHostStore(HostStoreInterface):
    """A store over hosts built by the caller."""

    def __init__(self, hosts: Mapping[str, Host] | None = None) -> None:
        self._hosts: dict[HostName, Host] = {HostName(name): host for name, host in (hosts or {}).items()}

    def add(self, host: Host) -> None:
        self._hosts[host.name] = host

    def get_host(self, name: HostName) -> Host:
        host = self._hosts.get(HostName(name))
        if host is None:
            raise HostNotFoundError(name)
        return host

    def list_host_names(self) -> tuple[HostName, ...]:
        return tuple(sorted(self._hosts))


class ConfigHostStore(HostStoreInterface):
    """Builds hosts from the [hosts] table of the loaded config.

    Driver options are resolved per host: configured value, then the option's
    environment variable, then its default.
    """

    def __init__(self, ctx: MachineContext, environ: Mapping[str, str] | None = None) -> None:
        self.ctx = ctx
        self.environ = os.environ if environ is None else environ
        self._hosts: dict[HostName, Host] = {}
        self._lock = threading.Lock()

    def list_host_names(self) -> tuple[HostName, ...]:
        return tuple(sorted(HostName(name) for name in self.ctx.config.hosts))

    def get_host(self, name: HostName) -> Host:
        key = HostName(name)
        with self._lock:
            host = self._hosts.get(key)
            if host is None:
                host = self._build_host(key)
                self._hosts[key] = host
            return host

    def _build_host(self, name: HostName) -> Host:
        config = self.ctx.config
        host_config = config.hosts.get(str(name))
        if host_config is None:
            raise HostNotFoundError(name)

        backend = get_backend(host_config.driver, self.ctx.pm)
        options = resolve_create_options(backend.get_create_flags(), host_config.options, self.environ)
        engine_options = host_config.engine or config.engine
        driver = backend.build_driver(
            name,
            config.get_host_store_dir(str(name)),
            options,
            engine_options.port,
            self.ctx,
        )
        logger.trace("Built {} driver for host {}", backend.get_name(), name)
        return Host(
            name=name,
            driver=driver,
            engine_options=engine_options,
            swarm_options=host_config.swarm or config.swarm,
        )
