from pathlib import Path

import pytest

from imbue.machine.config.data_types import PollSettings
from imbue.machine.drivers.fake.driver import FakeDriver
from imbue.machine.drivers.lifecycle import restart_policy
from imbue.machine.drivers.lifecycle import restart_with_fallback
from imbue.machine.drivers.lifecycle import state_policy
from imbue.machine.drivers.lifecycle import wait_for_state
from imbue.machine.errors import HostInErrorStateError
from imbue.machine.errors import OperationTimeoutError
from imbue.machine.primitives import HostName
from imbue.machine.primitives import HostState
from imbue.machine.utils.polling import Deadline


class _RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []
        self.now = 0.0

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.now += seconds

    def clock(self) -> float:
        return self.now


def _make_driver(tmp_path: Path, **kwargs) -> FakeDriver:
    return FakeDriver(machine_name=HostName("node-1"), store_path=tmp_path, **kwargs)


def test_restart_without_kill_when_stop_converges(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path, state=HostState.RUNNING)
    sleep = _RecordingSleep()

    restart_with_fallback(driver, restart_policy(PollSettings()), sleep)

    assert driver.backend_calls() == ["stop", "power_on"]
    assert sleep.calls == []
    assert driver.state == HostState.RUNNING


def test_restart_kills_exactly_once_when_host_stays_running(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path, state=HostState.RUNNING, ignores_graceful_stop=True)
    sleep = _RecordingSleep()

    restart_with_fallback(driver, restart_policy(PollSettings()), sleep)

    assert driver.backend_calls() == ["stop", "kill", "power_on"]
    # 60 polls, 2 seconds apart
    assert sleep.calls == [2.0] * 59
    assert driver.state == HostState.RUNNING


def test_restart_waits_through_stopping(tmp_path: Path) -> None:
    driver = _make_driver(
        tmp_path,
        state=HostState.RUNNING,
        state_script=[HostState.STOPPING, HostState.STOPPING],
    )
    sleep = _RecordingSleep()

    restart_with_fallback(driver, restart_policy(PollSettings()), sleep)

    assert driver.backend_calls() == ["stop", "power_on"]
    assert sleep.calls == [2.0, 2.0]


def test_restart_aborts_on_error_state(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path, state=HostState.RUNNING, state_script=[HostState.ERROR])

    with pytest.raises(HostInErrorStateError):
        restart_with_fallback(driver, restart_policy(PollSettings()), _RecordingSleep())

    assert driver.backend_calls() == ["stop"]


def test_restart_honours_deadline(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path, state=HostState.RUNNING, ignores_graceful_stop=True)
    sleep = _RecordingSleep()
    deadline = Deadline.after(5.0, clock=sleep.clock)

    with pytest.raises(OperationTimeoutError):
        restart_with_fallback(driver, restart_policy(PollSettings()), sleep, deadline)

    assert "kill" not in driver.backend_calls()
    assert "power_on" not in driver.backend_calls()


def test_fake_driver_restart_uses_configured_budget(tmp_path: Path) -> None:
    settings = PollSettings(restart_attempts=3, restart_interval_seconds=1.0)
    sleep = _RecordingSleep()
    driver = _make_driver(
        tmp_path,
        state=HostState.RUNNING,
        ignores_graceful_stop=True,
        poll_settings=settings,
        sleep=sleep,
    )

    driver.restart()

    assert driver.backend_calls() == ["stop", "kill", "power_on"]
    assert sleep.calls == [1.0, 1.0]


def test_wait_for_state_returns_once_target_reached(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path, state=HostState.RUNNING, state_script=[HostState.STARTING])

    wait_for_state(driver, HostState.RUNNING, state_policy(PollSettings()), _RecordingSleep())


def test_wait_for_state_times_out(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path, state=HostState.STARTING)
    settings = PollSettings(state_attempts=2)

    with pytest.raises(OperationTimeoutError):
        wait_for_state(driver, HostState.RUNNING, state_policy(settings), _RecordingSleep())
