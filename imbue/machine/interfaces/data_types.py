from pathlib import Path
from typing import Any

from pydantic import Field

from imbue.machine.primitives import FlagKind
from imbue.machine.primitives import InitSystem
from imbue.machine.utils.model_base import FrozenModel


class CommandResult(FrozenModel):
    """Result of executing a command on a host."""

    stdout: str = Field(description="Standard output from the command")
    stderr: str = Field(description="Standard error from the command")
    success: bool = Field(description="True if the command exited with status 0")


class CreateFlag(FrozenModel):
    """Describes one configuration option a driver accepts at create time.

    This is descriptive metadata only: drivers never read the environment themselves,
    they receive option values already resolved by the caller.
    """

    name: str = Field(description="Option name, prefixed by the driver name (e.g. 'vmwarevsphere-cpu-count')")
    kind: FlagKind = Field(description="Kind of value the option takes")
    usage: str = Field(description="Human-readable description of the option")
    env_var: str | None = Field(default=None, description="Environment variable that can supply the value")
    default: Any = Field(default=None, description="Value used when the option is not supplied")


class SSHCredentials(FrozenModel):
    """How to open a remote shell on a host."""

    hostname: str = Field(description="Address to connect to")
    port: int = Field(description="SSH port")
    username: str = Field(description="Remote user")
    key_path: Path | None = Field(default=None, description="Private key file, or None to use the SSH agent")


class OsRelease(FrozenModel):
    """The parsed contents of /etc/os-release."""

    id: str = Field(description="Lower-case OS identifier (ID)")
    id_like: tuple[str, ...] = Field(default=(), description="Related OS families (ID_LIKE), closest first")
    version_id: str = Field(default="", description="Version identifier (VERSION_ID)")
    name: str = Field(default="", description="OS name (NAME)")
    pretty_name: str = Field(default="", description="Full display name (PRETTY_NAME)")


class HostOsInfo(FrozenModel):
    """What detection learned about a host's operating system."""

    os_release: OsRelease = Field(description="Parsed os-release")
    init_system: InitSystem = Field(description="Init system running as PID 1")
