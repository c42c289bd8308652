from pathlib import Path

import pluggy
import pytest

from imbue.machine.config.data_types import EngineOptions
from imbue.machine.config.data_types import SwarmOptions
from imbue.machine.drivers.fake.driver import FakeDriver
from imbue.machine.errors import CommandFailedError
from imbue.machine.errors import ProvisioningStepFailedError
from imbue.machine.interfaces.provisioner import ProvisionerInterface
from imbue.machine.primitives import DaemonConfigShape
from imbue.machine.primitives import HostName
from imbue.machine.primitives import HostState
from imbue.machine.primitives import PackageAction
from imbue.machine.primitives import ProvisioningStep
from imbue.machine.provision.detector import detect_provisioner
from imbue.machine.provision.engine_config import EngineConfigContext
from imbue.machine.provision.registry import load_provisioners
from imbue.machine.remote.fake_runner import FakeCommandRunner
from imbue.machine.utils.testing import make_auth_options
from imbue.machine.utils.testing import make_host_runner


def _provisioner_for(
    tmp_path: Path,
    plugin_manager: pluggy.PluginManager,
    runner: FakeCommandRunner,
) -> ProvisionerInterface:
    driver = FakeDriver(
        machine_name=HostName("node-1"),
        store_path=tmp_path,
        state=HostState.RUNNING,
        sleep=lambda _: None,
    )
    return detect_provisioner(driver, runner, load_provisioners(plugin_manager))


def _provision(tmp_path: Path, provisioner: ProvisionerInterface, engine: EngineOptions | None = None) -> None:
    auth = make_auth_options(tmp_path, str(provisioner.get_docker_options_dir()))
    provisioner.provision(SwarmOptions(), auth, engine or EngineOptions())


def _config_context(tmp_path: Path, provisioner: ProvisionerInterface) -> EngineConfigContext:
    return EngineConfigContext(
        engine_port=2376,
        auth_options=make_auth_options(tmp_path, str(provisioner.get_docker_options_dir())),
        engine_options=EngineOptions(labels=("env=test",)),
        docker_options_dir=provisioner.get_docker_options_dir(),
        driver_name="fake",
    )


def test_ubuntu_systemd_runs_steps_in_order(tmp_path: Path, plugin_manager: pluggy.PluginManager) -> None:
    runner = make_host_runner("ubuntu", "systemd")
    provisioner = _provisioner_for(tmp_path, plugin_manager, runner)

    _provision(tmp_path, provisioner)

    ordered_markers = [
        "sudo hostname 'node-1'",
        "install -y 'curl'",
        "get.docker.com",
        "sudo systemctl enable 'docker'",
        "sudo mkdir -p '/etc/docker'",
        "/etc/docker/ca.pem",
        "10-machine.conf",
        "sudo systemctl daemon-reload",
        "sudo systemctl restart 'docker'",
        "ss -tln",
        "iptables",
    ]
    positions = [runner.index_of(marker) for marker in ordered_markers]
    assert -1 not in positions
    assert positions == sorted(positions)


def test_failing_step_is_named_and_stops_pipeline(tmp_path: Path, plugin_manager: pluggy.PluginManager) -> None:
    runner = make_host_runner("ubuntu", "systemd")
    runner.respond("get.docker.com", stderr="curl: (6) Could not resolve host", success=False)
    provisioner = _provisioner_for(tmp_path, plugin_manager, runner)

    with pytest.raises(ProvisioningStepFailedError) as exc_info:
        _provision(tmp_path, provisioner)

    assert exc_info.value.step == ProvisioningStep.INSTALL_ENGINE
    assert isinstance(exc_info.value.cause, CommandFailedError)
    assert runner.index_of("sudo mkdir -p '/etc/docker'") == -1
    assert runner.index_of("iptables") == -1
    assert not (tmp_path / "certs" / "ca.pem").exists()


def test_engine_that_never_listens_fails_configure_auth(
    tmp_path: Path,
    plugin_manager: pluggy.PluginManager,
) -> None:
    runner = FakeCommandRunner()
    runner.respond("ss -tln", stdout="LISTEN 0 128 *:22 *:*\n")
    runner.respond("/etc/os-release", stdout="ID=ubuntu\nID_LIKE=debian\n")
    runner.respond("/run/systemd/system", stdout="systemd\n")
    provisioner = _provisioner_for(tmp_path, plugin_manager, runner)

    with pytest.raises(ProvisioningStepFailedError) as exc_info:
        _provision(tmp_path, provisioner)

    assert exc_info.value.step == ProvisioningStep.CONFIGURE_AUTH
    assert runner.index_of("iptables") == -1


def test_cos_skips_packages_and_uses_flat_options_file(
    tmp_path: Path,
    plugin_manager: pluggy.PluginManager,
) -> None:
    runner = make_host_runner("cos", "systemd")
    provisioner = _provisioner_for(tmp_path, plugin_manager, runner)

    provisioner.package("curl", PackageAction.INSTALL)
    _provision(tmp_path, provisioner)

    assert provisioner.daemon_config_shape == DaemonConfigShape.FLAT
    assert runner.index_of("hostnamectl set-hostname") != -1
    assert runner.commands_containing("apt-get") == []
    assert runner.commands_containing("get.docker.com") == []
    assert runner.index_of("/etc/default/docker") != -1
    assert runner.index_of("10-machine.conf") == -1
    assert runner.index_of("iptables") != -1


def test_boot2docker_writes_profile_and_restarts_through_init_script(
    tmp_path: Path,
    plugin_manager: pluggy.PluginManager,
) -> None:
    runner = make_host_runner("boot2docker", "sysvinit")
    provisioner = _provisioner_for(tmp_path, plugin_manager, runner)

    _provision(tmp_path, provisioner)

    assert runner.index_of("sudo /usr/bin/sethostname 'node-1'") != -1
    assert runner.index_of("/var/lib/boot2docker/profile") != -1
    assert runner.index_of("/var/lib/boot2docker/ca.pem") != -1
    assert runner.index_of("sudo /etc/init.d/docker restart") != -1
    assert runner.commands_containing("get.docker.com") == []


def test_arch_installs_engine_from_package(tmp_path: Path, plugin_manager: pluggy.PluginManager) -> None:
    runner = make_host_runner("arch", "systemd")
    provisioner = _provisioner_for(tmp_path, plugin_manager, runner)

    _provision(tmp_path, provisioner)

    assert runner.index_of("sudo pacman -S --noconfirm --needed 'docker'") != -1
    assert runner.commands_containing("get.docker.com") == []


def test_centos_sets_hostname_with_hostnamectl(tmp_path: Path, plugin_manager: pluggy.PluginManager) -> None:
    runner = make_host_runner("centos", "systemd")
    provisioner = _provisioner_for(tmp_path, plugin_manager, runner)

    _provision(tmp_path, provisioner)

    assert runner.index_of("sudo hostnamectl set-hostname 'node-1'") != -1
    assert runner.index_of("sudo yum install -y 'curl'") != -1


def test_drop_in_and_flat_shapes_carry_the_same_flags(
    tmp_path: Path,
    plugin_manager: pluggy.PluginManager,
) -> None:
    systemd_provisioner = _provisioner_for(tmp_path, plugin_manager, make_host_runner("ubuntu", "systemd"))
    upstart_provisioner = _provisioner_for(tmp_path, plugin_manager, make_host_runner("ubuntu", "upstart"))

    drop_in = systemd_provisioner.generate_docker_options(_config_context(tmp_path, systemd_provisioner))
    flat = upstart_provisioner.generate_docker_options(_config_context(tmp_path, upstart_provisioner))

    assert drop_in.shape == DaemonConfigShape.SYSTEMD_DROP_IN
    assert len(drop_in.artifacts) == 2
    assert flat.shape == DaemonConfigShape.FLAT
    assert len(flat.artifacts) == 1
    for flag in ("-H tcp://0.0.0.0:2376", "--tlsverify", "--label env=test", "--storage-driver overlay2"):
        assert flag in drop_in.artifacts[0].content
        assert flag in flat.artifacts[0].content


def test_regenerate_certs_is_passed_to_tls_bootstrap(tmp_path: Path, plugin_manager: pluggy.PluginManager) -> None:
    runner = make_host_runner("debian", "systemd")
    provisioner = _provisioner_for(tmp_path, plugin_manager, runner)
    _provision(tmp_path, provisioner)
    first_ca = (tmp_path / "certs" / "ca.pem").read_bytes()

    provisioner.regenerate_certs = True
    _provision(tmp_path, provisioner)

    assert (tmp_path / "certs" / "ca.pem").read_bytes() != first_ca
