from collections.abc import Sequence

from click import ClickException

from imbue.machine.primitives import DriverName
from imbue.machine.primitives import HostName
from imbue.machine.primitives import HostState
from imbue.machine.primitives import ProvisioningStep


class BaseMachineError(Exception):
    """Base exception for all machine errors."""


class MachineError(ClickException, BaseMachineError):
    """Base exception for all user-facing machine errors.

    Subclasses can set user_help_text to give the user a hint on how to resolve
    the problem. The CLI prints it below the error message.
    """

    user_help_text: str | None = None

    def format_message(self) -> str:
        if self.user_help_text:
            return f"{self.message}\n  {self.user_help_text}"
        return self.message


# === Configuration ===


class ConfigError(MachineError):
    """Base class for configuration errors."""


class ConfigNotFoundError(ConfigError):
    """Raised when an explicitly requested config file does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Config file not found: {path}")


class ConfigParseError(ConfigError):
    """Raised when a config file cannot be parsed or fails validation."""


class DriverOptionError(ConfigError, ValueError):
    """Raised when a driver option has a value of the wrong kind."""

    def __init__(self, option_name: str, reason: str) -> None:
        self.option_name = option_name
        self.reason = reason
        super().__init__(f"Invalid value for driver option '{option_name}': {reason}")


# === Hosts and drivers ===


class HostError(MachineError):
    """Base class for host-related errors."""


class HostNotFoundError(HostError):
    """No host with this name is known."""

    user_help_text = "Add the host to the [hosts] table of your machine config."

    def __init__(self, host_name: HostName | str) -> None:
        self.host_name = host_name
        super().__init__(f"Host not found: {host_name}")


class HostNotRunningError(HostError):
    """Raised when an operation needs a running host but the host is in another state."""

    def __init__(self, host_name: str, state: HostState) -> None:
        self.host_name = host_name
        self.state = state
        super().__init__(f"Host {host_name} is not running (state: {state})")


class HostInErrorStateError(HostError):
    """Raised when the backend reports the host in the ERROR state during a transition."""

    def __init__(self, host_name: str, operation: str) -> None:
        self.host_name = host_name
        self.operation = operation
        super().__init__(f"Host {host_name} entered the ERROR state during {operation}")


class UnknownDriverError(MachineError):
    """Raised when no backend is registered under the requested driver name."""

    def __init__(self, driver_name: DriverName | str, available: Sequence[str]) -> None:
        self.driver_name = driver_name
        self.available = tuple(available)
        super().__init__(
            f"Unknown driver: {driver_name}. Registered drivers: {', '.join(self.available) or '(none)'}"
        )


class BackendUnavailableError(HostError):
    """Raised when the virtualization backend or the host's remote shell cannot be reached."""


class UnsupportedOperationError(HostError):
    """Raised when a driver does not implement an operation."""


class OperationTimeoutError(HostError):
    """Raised when an operation does not finish before its deadline or poll budget runs out."""


class CommandFailedError(HostError):
    """Raised when a remote command exits unsuccessfully."""

    def __init__(self, command: str, stdout: str, stderr: str) -> None:
        self.command = command
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip() or "(no output)"
        super().__init__(f"Remote command failed: {command}\n{detail}")


# === vSphere client boundary ===


class VSphereError(BackendUnavailableError):
    """Base class for errors raised by a vSphere session."""


class VSphereNotFoundError(VSphereError):
    """Raised when an inventory object (datacenter, folder, VM, ...) cannot be found."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"vSphere {kind} not found: {name}")


class VSphereFileNotFoundError(VSphereError):
    """Raised when a datastore file does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Datastore file not found: {path}")


# === Provisioning ===


class ProvisioningError(MachineError):
    """Base class for provisioning errors."""


class UnknownOperatingSystemError(ProvisioningError):
    """Raised when no registered provisioner matches the host's operating system."""

    user_help_text = "Register a provisioner for this OS through the register_provisioners plugin hook."

    def __init__(self, os_id: str, id_like: Sequence[str]) -> None:
        self.os_id = os_id
        self.id_like = tuple(id_like)
        family = " ".join(self.id_like) or "(none)"
        super().__init__(f"No provisioner matches operating system '{os_id}' (family: {family})")


class ProvisioningStepFailedError(ProvisioningError):
    """Raised when one step of the provisioning pipeline fails; later steps are not run."""

    def __init__(self, step: ProvisioningStep, cause: BaseException) -> None:
        self.step = step
        self.cause = cause
        super().__init__(f"Provisioning step {step} failed: {cause}")


class ProvisionerRegistryFrozenError(ProvisioningError):
    """Raised when a provisioner is registered after the registry has been frozen."""


class TLSBootstrapError(ProvisioningError):
    """Raised when the local certificate set is unusable and regeneration was not requested."""

    user_help_text = "Re-run provisioning with certificate regeneration enabled to replace the certificate set."


# === Aggregate ===


class HostActionsFailedError(MachineError):
    """Raised when an action failed on one or more hosts."""

    def __init__(self, action: str, failures: Sequence[tuple[str, str]]) -> None:
        self.action = action
        self.failures = tuple(failures)
        lines = [f"{action} failed on {len(self.failures)} host(s):"]
        lines.extend(f"  {host_name}: {message}" for host_name, message in self.failures)
        super().__init__("\n".join(lines))
