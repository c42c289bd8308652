from pathlib import Path

import pytest
from paramiko import SSHException

from imbue.machine.errors import BackendUnavailableError
from imbue.machine.interfaces.data_types import SSHCredentials
from imbue.machine.remote.pyinfra_runner import PyinfraCommandRunner
from imbue.machine.remote.pyinfra_runner import create_pyinfra_host


class _StubOutput:
    def __init__(self, stdout: str, stderr: str) -> None:
        self.stdout = stdout
        self.stderr = stderr


class _StubPyinfraHost:
    """Stands in for a pyinfra host; only the attributes the runner touches."""

    def __init__(self, success: bool = True, error: BaseException | None = None) -> None:
        self.connected = False
        self.connect_calls = 0
        self._success = success
        self._error = error

    def connect(self, raise_exceptions: bool = False) -> None:
        self.connect_calls += 1
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def run_shell_command(self, command, _timeout=None):
        if self._error is not None:
            raise self._error
        return self._success, _StubOutput("hello", "warn")


def test_run_connects_once_and_maps_output() -> None:
    stub = _StubPyinfraHost()
    runner = PyinfraCommandRunner(stub, "docker@10.0.0.5:22")  # type: ignore[arg-type]

    first = runner.run("echo hello")
    runner.run("echo again")

    assert first.success
    assert first.stdout == "hello"
    assert first.stderr == "warn"
    assert stub.connect_calls == 1


def test_run_reports_failure_without_raising() -> None:
    runner = PyinfraCommandRunner(_StubPyinfraHost(success=False), "h")  # type: ignore[arg-type]

    assert runner.run("false").success is False


@pytest.mark.parametrize(
    "error",
    [EOFError(), SSHException("reset"), OSError("Socket is closed"), TimeoutError("timed out")],
)
def test_connection_errors_become_backend_unavailable(error: BaseException) -> None:
    runner = PyinfraCommandRunner(_StubPyinfraHost(error=error), "h")  # type: ignore[arg-type]

    with pytest.raises(BackendUnavailableError):
        runner.run("true")


def test_create_pyinfra_host_uses_credentials() -> None:
    credentials = SSHCredentials(hostname="10.0.0.5", port=2222, username="docker", key_path=Path("/k/id_rsa"))

    host = create_pyinfra_host(credentials)

    assert host.name == "10.0.0.5"
    assert host.data.ssh_user == "docker"
    assert host.data.ssh_port == 2222
    assert host.data.ssh_key == "/k/id_rsa"


def test_close_disconnects_an_open_connection() -> None:
    stub = _StubPyinfraHost()
    runner = PyinfraCommandRunner(stub, "h")  # type: ignore[arg-type]
    runner.run("true")

    runner.close()

    assert stub.connected is False
