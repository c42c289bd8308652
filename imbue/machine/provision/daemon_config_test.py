from pathlib import Path
from pathlib import PurePosixPath

from imbue.machine.config.data_types import EngineOptions
from imbue.machine.primitives import DaemonConfigShape
from imbue.machine.primitives import InitSystem
from imbue.machine.provision.daemon_config import Boot2DockerProfileStrategy
from imbue.machine.provision.daemon_config import FlatOptionsFileStrategy
from imbue.machine.provision.daemon_config import SystemdDropInStrategy
from imbue.machine.provision.daemon_config import select_daemon_config_strategy
from imbue.machine.provision.daemon_config import write_daemon_config
from imbue.machine.provision.engine_config import EngineConfigContext
from imbue.machine.provision.engine_config import build_daemon_flags
from imbue.machine.remote.fake_runner import FakeCommandRunner
from imbue.machine.utils.testing import make_auth_options


def _context(tmp_path: Path, options_dir: str = "/etc/docker", **engine: object) -> EngineConfigContext:
    return EngineConfigContext(
        engine_port=2376,
        auth_options=make_auth_options(tmp_path, options_dir),
        engine_options=EngineOptions(**engine),
        docker_options_dir=PurePosixPath(options_dir),
        driver_name="vmwarevsphere",
    )


def test_daemon_flags_include_tls_and_port(tmp_path: Path) -> None:
    flags = build_daemon_flags(_context(tmp_path, arbitrary_flags=("debug", "--ipv6")))

    assert flags[0] == "-H tcp://0.0.0.0:2376"
    assert "--tlscacert /etc/docker/ca.pem" in flags
    assert "--tlskey /etc/docker/server-key.pem" in flags
    assert "--label provider=vmwarevsphere" in flags
    assert "--debug" in flags
    assert "--ipv6" in flags


def test_flat_file_wraps_flags_and_exports_env(tmp_path: Path) -> None:
    config = FlatOptionsFileStrategy().generate(_context(tmp_path, env=("HTTP_PROXY=http://proxy:3128",)))

    (artifact,) = config.artifacts
    assert artifact.path == PurePosixPath("/etc/default/docker")
    assert artifact.content.startswith("DOCKER_OPTS='\n")
    assert 'export HTTP_PROXY="http://proxy:3128"' in artifact.content
    assert config.reload_commands == ()


def test_drop_in_points_unit_at_flag_file(tmp_path: Path) -> None:
    config = SystemdDropInStrategy().generate(_context(tmp_path))

    flag_file, override = config.artifacts
    assert flag_file.path == PurePosixPath("/etc/docker/machine-daemon.env")
    assert "EnvironmentFile=/etc/docker/machine-daemon.env" in override.content
    assert "ExecStart=\n" in override.content
    assert config.reload_commands == ("sudo systemctl daemon-reload",)


def test_boot2docker_profile_moves_handled_flags_out_of_extra_args(tmp_path: Path) -> None:
    config = Boot2DockerProfileStrategy().generate(
        _context(tmp_path, "/var/lib/boot2docker", labels=("zone=a",), storage_driver="aufs")
    )

    content = config.artifacts[0].content
    extra_args = content.split("EXTRA_ARGS='\n", 1)[1].split("\n'", 1)[0]
    assert "--label zone=a" in extra_args
    assert "--tlsverify" not in extra_args
    assert "DOCKER_STORAGE=aufs" in content
    assert "SERVERCERT=/var/lib/boot2docker/server.pem" in content
    assert config.shape == DaemonConfigShape.FLAT


def test_default_strategy_follows_init_system() -> None:
    assert isinstance(select_daemon_config_strategy(InitSystem.SYSTEMD), SystemdDropInStrategy)
    assert isinstance(select_daemon_config_strategy(InitSystem.UPSTART), FlatOptionsFileStrategy)
    assert isinstance(select_daemon_config_strategy(InitSystem.SYSVINIT), FlatOptionsFileStrategy)


def test_write_daemon_config_writes_artifacts_before_reload(tmp_path: Path) -> None:
    runner = FakeCommandRunner()

    write_daemon_config(runner, SystemdDropInStrategy().generate(_context(tmp_path)))

    assert len(runner.commands) == 3
    assert "machine-daemon.env" in runner.commands[0]
    assert "10-machine.conf" in runner.commands[1]
    assert runner.commands[2] == "sudo systemctl daemon-reload"
