from collections.abc import Generator
from pathlib import Path

import pluggy
import pytest
from click.testing import CliRunner

from imbue.machine.config.data_types import MachineConfig
from imbue.machine.config.data_types import MachineContext
from imbue.machine.config.data_types import PollSettings
from imbue.machine.drivers.registry import reset_backend_registry
from imbue.machine.plugins import hookspecs
from imbue.machine.provision.registry import load_provisioners
from imbue.machine.remote.fake_runner import FakeCommandRunner
from imbue.machine.remote.fake_runner import fake_runner_factory
from imbue.machine.utils.model_base import NonNegativeFloat
from imbue.machine.utils.model_base import PositiveInt
from imbue.machine.utils.testing import make_host_runner


def _no_sleep(seconds: float) -> None:
    pass


@pytest.fixture
def plugin_manager() -> Generator[pluggy.PluginManager, None, None]:
    """A plugin manager with the machine hookspecs and no backends loaded yet.

    Backends are loaded on demand, so the backend registry is cleared before and
    after each test.
    """
    reset_backend_registry()
    pm = pluggy.PluginManager("machine")
    pm.add_hookspecs(hookspecs)
    yield pm
    reset_backend_registry()


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def host_runner() -> FakeCommandRunner:
    """A fake remote shell on an ubuntu/systemd host whose engine listens on 2376."""
    return make_host_runner()


@pytest.fixture
def fast_poll_settings() -> PollSettings:
    return PollSettings(
        restart_interval_seconds=NonNegativeFloat(0.0),
        restart_attempts=PositiveInt(3),
        state_interval_seconds=NonNegativeFloat(0.0),
        state_attempts=PositiveInt(3),
        ssh_interval_seconds=NonNegativeFloat(0.0),
        ssh_attempts=PositiveInt(3),
        engine_interval_seconds=NonNegativeFloat(0.0),
        engine_attempts=PositiveInt(3),
    )


@pytest.fixture
def machine_config(tmp_path: Path, fast_poll_settings: PollSettings) -> MachineConfig:
    return MachineConfig(store_dir=tmp_path / "store", polling=fast_poll_settings)


@pytest.fixture
def machine_ctx(
    machine_config: MachineConfig,
    plugin_manager: pluggy.PluginManager,
    host_runner: FakeCommandRunner,
) -> MachineContext:
    """A context whose hosts all share host_runner as their remote shell."""
    return MachineContext(
        config=machine_config,
        pm=plugin_manager,
        provisioner_registry=load_provisioners(plugin_manager),
        command_runner_factory=fake_runner_factory(host_runner),
        sleep=_no_sleep,
    )
