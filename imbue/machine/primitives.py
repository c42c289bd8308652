from enum import auto

from imbue.machine.utils.model_base import NonEmptyStr
from imbue.machine.utils.model_base import UpperCaseStrEnum

# === Enums ===


class HostState(UpperCaseStrEnum):
    """The lifecycle state of a host, as reported by its driver."""

    NONE = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPED = auto()
    STOPPING = auto()
    SAVED = auto()
    PAUSED = auto()
    ERROR = auto()
    TIMEOUT = auto()


class LifecycleAction(UpperCaseStrEnum):
    """Actions the dispatcher can apply to a set of hosts."""

    CREATE = auto()
    START = auto()
    STOP = auto()
    RESTART = auto()
    KILL = auto()
    REMOVE = auto()
    UPGRADE = auto()
    PROVISION = auto()


class PackageAction(UpperCaseStrEnum):
    """What to do with an OS package."""

    INSTALL = auto()
    REMOVE = auto()
    UPGRADE = auto()


class ServiceAction(UpperCaseStrEnum):
    """What to do with an init-system service."""

    START = auto()
    STOP = auto()
    RESTART = auto()
    ENABLE = auto()
    DISABLE = auto()


class InitSystem(UpperCaseStrEnum):
    """Init system detected on a remote host."""

    SYSTEMD = auto()
    UPSTART = auto()
    SYSVINIT = auto()


class DaemonConfigShape(UpperCaseStrEnum):
    """How the engine daemon's flags are delivered to its init system."""

    # One environment-style file holding the full flag set
    FLAT = auto()
    # A unit override fragment that references a separate flag file
    SYSTEMD_DROP_IN = auto()


class ProvisioningStep(UpperCaseStrEnum):
    """Ordered steps of the provisioning pipeline."""

    SET_HOSTNAME = auto()
    INSTALL_PACKAGES = auto()
    INSTALL_ENGINE = auto()
    MAKE_OPTIONS_DIR = auto()
    BOOTSTRAP_TLS = auto()
    CONFIGURE_AUTH = auto()
    CONFIGURE_SWARM = auto()
    OPEN_FIREWALL = auto()


class FlagKind(UpperCaseStrEnum):
    """Value kind of a driver create option."""

    STRING = auto()
    INT = auto()
    BOOL = auto()
    STRING_LIST = auto()


class LogLevel(UpperCaseStrEnum):
    """Log verbosity level."""

    TRACE = auto()
    DEBUG = auto()
    INFO = auto()
    WARNING = auto()
    ERROR = auto()


class OutputFormat(UpperCaseStrEnum):
    """Output format mode."""

    HUMAN = auto()
    JSON = auto()


# === Names ===


class HostName(NonEmptyStr):
    """Unique, human-readable name of a host."""


class DriverName(NonEmptyStr):
    """Name of a virtualization backend (e.g. 'vmwarevsphere')."""


class ProvisionerName(NonEmptyStr):
    """Name of an OS-specific provisioner (e.g. 'ubuntu(systemd)')."""
