from collections.abc import Callable
from pathlib import Path
from pathlib import PurePosixPath
from typing import Any
from typing import Final

import pluggy
from pydantic import ConfigDict
from pydantic import Field

from imbue.machine.primitives import DriverName
from imbue.machine.primitives import LogLevel
from imbue.machine.utils.model_base import FrozenModel
from imbue.machine.utils.model_base import NonNegativeFloat
from imbue.machine.utils.model_base import PositiveInt

DEFAULT_ENGINE_PORT: Final[int] = 2376
DEFAULT_STORAGE_DRIVER: Final[str] = "overlay2"
DEFAULT_ENGINE_INSTALL_URL: Final[str] = "https://get.docker.com"
DEFAULT_SWARM_IMAGE: Final[str] = "swarm:latest"
DEFAULT_SWARM_MASTER_HOST: Final[str] = "tcp://0.0.0.0:3376"
DEFAULT_STORE_DIR: Final[Path] = Path("~/.machine")


class EngineOptions(FrozenModel):
    """How the container engine daemon on a host is installed and configured."""

    port: PositiveInt = Field(
        default=PositiveInt(DEFAULT_ENGINE_PORT),
        description="TCP port the daemon listens on for TLS connections",
    )
    storage_driver: str = Field(
        default=DEFAULT_STORAGE_DRIVER,
        description="Storage driver passed to the daemon",
    )
    labels: tuple[str, ...] = Field(
        default=(),
        description="Daemon labels, each in key=value form",
    )
    insecure_registries: tuple[str, ...] = Field(
        default=(),
        description="Registries the daemon may reach without TLS verification",
    )
    registry_mirrors: tuple[str, ...] = Field(
        default=(),
        description="Registry mirrors the daemon should use",
    )
    arbitrary_flags: tuple[str, ...] = Field(
        default=(),
        description="Extra daemon flags, given without the leading '--'",
    )
    env: tuple[str, ...] = Field(
        default=(),
        description="Environment variables for the daemon, each in KEY=value form",
    )
    install_url: str = Field(
        default=DEFAULT_ENGINE_INSTALL_URL,
        description="URL of the engine install script used by package-managed hosts",
    )


class SwarmOptions(FrozenModel):
    """Swarm cluster membership for a host."""

    is_swarm: bool = Field(default=False, description="Whether the host joins a swarm cluster")
    is_master: bool = Field(default=False, description="Whether the host runs the swarm manager")
    is_experimental: bool = Field(default=False, description="Pass --experimental to swarm")
    discovery: str = Field(default="", description="Discovery URL of the swarm cluster")
    image: str = Field(default=DEFAULT_SWARM_IMAGE, description="Swarm container image")
    master_host: str = Field(
        default=DEFAULT_SWARM_MASTER_HOST,
        description="Address the swarm manager listens on",
    )
    strategy: str = Field(default="spread", description="Scheduling strategy of the swarm manager")
    master_options: tuple[str, ...] = Field(default=(), description="Extra options for 'swarm manage'")
    agent_options: tuple[str, ...] = Field(default=(), description="Extra options for 'swarm join'")


class AuthOptions(FrozenModel):
    """Where the TLS certificate set of one host lives locally and on the remote host."""

    store_dir: Path = Field(description="Per-host local directory holding the certificate set")
    ca_cert_path: Path = Field(description="Local CA certificate")
    ca_key_path: Path = Field(description="Local CA private key")
    server_cert_path: Path = Field(description="Local server certificate")
    server_key_path: Path = Field(description="Local server private key")
    client_cert_path: Path = Field(description="Local client certificate")
    client_key_path: Path = Field(description="Local client private key")
    ca_cert_remote_path: PurePosixPath = Field(description="CA certificate path on the remote host")
    server_cert_remote_path: PurePosixPath = Field(description="Server certificate path on the remote host")
    server_key_remote_path: PurePosixPath = Field(description="Server private key path on the remote host")
    server_cert_sans: tuple[str, ...] = Field(
        default=(),
        description="Extra subject alternative names for the server certificate",
    )

    @classmethod
    def for_host(
        cls,
        store_dir: Path,
        remote_options_dir: PurePosixPath,
        server_cert_sans: tuple[str, ...] = (),
    ) -> "AuthOptions":
        """Build the standard certificate layout for a host store and a remote options directory."""
        return cls(
            store_dir=store_dir,
            ca_cert_path=store_dir / "ca.pem",
            ca_key_path=store_dir / "ca-key.pem",
            server_cert_path=store_dir / "server.pem",
            server_key_path=store_dir / "server-key.pem",
            client_cert_path=store_dir / "cert.pem",
            client_key_path=store_dir / "key.pem",
            ca_cert_remote_path=remote_options_dir / "ca.pem",
            server_cert_remote_path=remote_options_dir / "server.pem",
            server_key_remote_path=remote_options_dir / "server-key.pem",
            server_cert_sans=server_cert_sans,
        )


class LoggingConfig(FrozenModel):
    """Logging configuration."""

    console_level: LogLevel = Field(default=LogLevel.INFO, description="Level for messages on stderr")
    file_level: LogLevel = Field(default=LogLevel.DEBUG, description="Level for the log file")
    log_file: Path | None = Field(
        default=None,
        description="Log file path; relative paths are resolved against the store directory. No file when unset.",
    )
    max_log_size_mb: PositiveInt = Field(default=PositiveInt(10), description="Rotate the log file at this size")


class PollSettings(FrozenModel):
    """Budgets for the bounded poll loops used by lifecycle transitions and provisioning."""

    restart_interval_seconds: NonNegativeFloat = Field(
        default=NonNegativeFloat(2.0),
        description="Delay between state polls while waiting for a graceful stop during restart",
    )
    restart_attempts: PositiveInt = Field(
        default=PositiveInt(60),
        description="State polls before restart falls back to a forced power-off",
    )
    state_interval_seconds: NonNegativeFloat = Field(
        default=NonNegativeFloat(3.0),
        description="Delay between state polls while waiting for a target state",
    )
    state_attempts: PositiveInt = Field(default=PositiveInt(60), description="State polls before giving up")
    ssh_interval_seconds: NonNegativeFloat = Field(
        default=NonNegativeFloat(3.0),
        description="Delay between attempts to open a remote shell",
    )
    ssh_attempts: PositiveInt = Field(default=PositiveInt(60), description="Remote shell attempts before giving up")
    engine_interval_seconds: NonNegativeFloat = Field(
        default=NonNegativeFloat(3.0),
        description="Delay between checks that the engine daemon listens on its port",
    )
    engine_attempts: PositiveInt = Field(
        default=PositiveInt(10),
        description="Daemon listening checks before provisioning fails",
    )


class HostConfig(FrozenModel):
    """Configuration of one named host."""

    driver: DriverName = Field(description="Name of the virtualization backend")
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Driver create options keyed by option name (e.g. 'vmwarevsphere-cpu-count')",
    )
    engine: EngineOptions | None = Field(default=None, description="Overrides the default engine options")
    swarm: SwarmOptions | None = Field(default=None, description="Overrides the default swarm options")


class MachineConfig(FrozenModel):
    """Top-level configuration."""

    store_dir: Path = Field(default=DEFAULT_STORE_DIR, description="Root of the local per-host stores")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    engine: EngineOptions = Field(default_factory=EngineOptions, description="Default engine options")
    swarm: SwarmOptions = Field(default_factory=SwarmOptions, description="Default swarm options")
    polling: PollSettings = Field(default_factory=PollSettings)
    max_parallel_hosts: PositiveInt = Field(
        default=PositiveInt(8),
        description="Upper bound on hosts handled concurrently by one action",
    )
    action_timeout_seconds: NonNegativeFloat = Field(
        default=NonNegativeFloat(1800.0),
        description="Overall deadline of one action across all of its hosts",
    )
    hosts: dict[str, HostConfig] = Field(default_factory=dict)

    def get_host_store_dir(self, host_name: str) -> Path:
        return self.store_dir.expanduser() / "machines" / host_name


class MachineContext(FrozenModel):
    """Everything an operation needs besides the host itself.

    Built once at startup. The provisioner registry is frozen by then, so the
    context can be shared by concurrently running host operations.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    config: MachineConfig = Field(description="Loaded configuration")
    pm: pluggy.PluginManager = Field(description="Plugin manager with all hookspecs registered")
    provisioner_registry: Any = Field(description="Frozen ProvisionerRegistry")
    command_runner_factory: Callable[..., Any] = Field(
        description="Builds a CommandRunnerInterface for a driver",
    )
    sleep: Callable[[float], None] = Field(description="Sleep function used by every poll loop")
