from pathlib import Path

import pytest

from imbue.machine.drivers.generic.driver import GenericDriver
from imbue.machine.errors import DriverOptionError
from imbue.machine.errors import HostNotRunningError
from imbue.machine.errors import UnsupportedOperationError
from imbue.machine.primitives import HostName
from imbue.machine.primitives import HostState
from imbue.machine.remote.fake_runner import FakeCommandRunner
from imbue.machine.remote.fake_runner import fake_runner_factory


def _make_driver(tmp_path: Path, runner: FakeCommandRunner, is_up: bool = True, **kwargs) -> GenericDriver:
    return GenericDriver(
        machine_name=HostName("box"),
        store_path=tmp_path / "machines" / "box",
        ip_address="192.168.10.4",
        command_runner_factory=fake_runner_factory(runner),
        is_reachable=lambda host, port: is_up,
        **kwargs,
    )


def test_state_follows_ssh_reachability(tmp_path: Path) -> None:
    runner = FakeCommandRunner()

    assert _make_driver(tmp_path, runner, is_up=True).get_state() == HostState.RUNNING
    assert _make_driver(tmp_path, runner, is_up=False).get_state() == HostState.STOPPED


def test_start_only_accepts_running_machine(tmp_path: Path) -> None:
    runner = FakeCommandRunner()
    _make_driver(tmp_path, runner, is_up=True).start()

    with pytest.raises(UnsupportedOperationError):
        _make_driver(tmp_path, runner, is_up=False).start()

    assert runner.commands == []


def test_stop_and_kill_go_through_remote_shell(tmp_path: Path) -> None:
    runner = FakeCommandRunner()
    driver = _make_driver(tmp_path, runner)

    driver.stop()
    driver.kill()
    driver.restart()

    assert runner.commands == ["sudo shutdown -h now", "sudo poweroff -f", "sudo shutdown -r now"]


def test_remove_issues_no_remote_commands(tmp_path: Path) -> None:
    runner = FakeCommandRunner()

    _make_driver(tmp_path, runner).remove()

    assert runner.commands == []


def test_create_copies_key_into_store(tmp_path: Path) -> None:
    key = tmp_path / "my_key"
    key.write_text("PRIVATE")
    driver = _make_driver(tmp_path, FakeCommandRunner(), ssh_key_source=key)

    driver.pre_create_check()
    driver.create()

    assert driver.get_ssh_key_path() == tmp_path / "machines" / "box" / "id_rsa"
    assert (tmp_path / "machines" / "box" / "id_rsa").read_text() == "PRIVATE"


def test_pre_create_check_rejects_missing_key(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path, FakeCommandRunner(), ssh_key_source=tmp_path / "missing")

    with pytest.raises(DriverOptionError, match="generic-ssh-key"):
        driver.pre_create_check()


def test_get_ip_requires_reachable_machine(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path, FakeCommandRunner(), is_up=False)

    with pytest.raises(HostNotRunningError):
        driver.get_ip()


def test_ssh_credentials_use_configured_user_and_port(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path, FakeCommandRunner(), ssh_user="ubuntu", ssh_port=2222)

    credentials = driver.get_ssh_credentials()

    assert (credentials.hostname, credentials.port, credentials.username) == ("192.168.10.4", 2222, "ubuntu")
    assert credentials.key_path is None
