"""Engine daemon configuration: the flag set every configuration shape is rendered from."""

from pathlib import PurePosixPath
from typing import Final

from pydantic import Field

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.config.data_types import EngineOptions
from imbue.machine.primitives import DaemonConfigShape
from imbue.machine.utils.model_base import FrozenModel
from imbue.machine.utils.model_base import pure

ENGINE_UNIX_SOCKET: Final[str] = "unix:///var/run/docker.sock"


class EngineConfigContext(FrozenModel):
    """Inputs for rendering one host's daemon configuration."""

    engine_port: int = Field(description="TCP port the daemon listens on")
    auth_options: AuthOptions = Field(description="Certificate layout; the remote paths end up in the flags")
    engine_options: EngineOptions = Field(description="Daemon options requested for the host")
    docker_options_dir: PurePosixPath = Field(description="Remote directory holding the daemon's options")
    driver_name: str = Field(description="Backend name, recorded as the provider label")


class DaemonConfigArtifact(FrozenModel):
    """One file to write on the remote host."""

    path: PurePosixPath = Field(description="Remote path")
    content: str = Field(description="File content")
    mode: int = Field(default=0o644, description="Permission bits applied after writing")


class DaemonConfig(FrozenModel):
    """Rendered daemon configuration for one shape."""

    shape: DaemonConfigShape = Field(description="How the flags reach the init system")
    artifacts: tuple[DaemonConfigArtifact, ...] = Field(description="Files to write, in order")
    reload_commands: tuple[str, ...] = Field(
        default=(),
        description="Commands that make the init system pick up the new files before the daemon restarts",
    )


@pure
def build_daemon_flags(context: EngineConfigContext) -> tuple[str, ...]:
    """Build the daemon's command-line flags, one flag (with its value) per entry.

    Every configuration shape embeds exactly this tuple, so the listening port and
    TLS material are identical whichever shape is written.
    """
    auth = context.auth_options
    engine = context.engine_options
    flags = [
        f"-H tcp://0.0.0.0:{context.engine_port}",
        f"-H {ENGINE_UNIX_SOCKET}",
        f"--storage-driver {engine.storage_driver}",
        "--tlsverify",
        f"--tlscacert {auth.ca_cert_remote_path}",
        f"--tlscert {auth.server_cert_remote_path}",
        f"--tlskey {auth.server_key_remote_path}",
        f"--label provider={context.driver_name}",
    ]
    flags.extend(f"--label {label}" for label in engine.labels)
    flags.extend(f"--insecure-registry {registry}" for registry in engine.insecure_registries)
    flags.extend(f"--registry-mirror {mirror}" for mirror in engine.registry_mirrors)
    flags.extend(_as_long_flag(flag) for flag in engine.arbitrary_flags)
    return tuple(flags)


@pure
def _as_long_flag(flag: str) -> str:
    if flag.startswith("-"):
        return flag
    return f"--{flag}"


@pure
def build_env_assignments(env: tuple[str, ...]) -> tuple[tuple[str, str], ...]:
    """Split KEY=value entries; entries without '=' get an empty value."""
    assignments = []
    for entry in env:
        key, _, value = entry.partition("=")
        assignments.append((key, value))
    return tuple(assignments)
