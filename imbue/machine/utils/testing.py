"""Helpers shared by tests."""

from pathlib import Path
from pathlib import PurePosixPath

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.interfaces.data_types import HostOsInfo
from imbue.machine.interfaces.data_types import OsRelease
from imbue.machine.primitives import InitSystem
from imbue.machine.remote.fake_runner import FakeCommandRunner

ENGINE_LISTENING_OUTPUT = "State  Recv-Q Send-Q Local Address:Port\nLISTEN 0      4096   *:2376  *:*\n"

OS_RELEASES = {
    "ubuntu": 'NAME="Ubuntu"\nID=ubuntu\nID_LIKE=debian\nVERSION_ID="22.04"\n',
    "debian": 'NAME="Debian GNU/Linux"\nID=debian\nVERSION_ID="12"\n',
    "centos": 'NAME="CentOS Stream"\nID="centos"\nID_LIKE="rhel fedora"\nVERSION_ID="9"\n',
    "rocky": 'NAME="Rocky Linux"\nID="rocky"\nID_LIKE="rhel centos fedora"\nVERSION_ID="9.3"\n',
    "linuxmint": 'NAME="Linux Mint"\nID=linuxmint\nID_LIKE="ubuntu debian"\n',
    "arch": 'NAME="Arch Linux"\nID=arch\n',
    "cos": 'NAME="Container-Optimized OS"\nID=cos\nVERSION_ID=105\n',
    "boot2docker": 'NAME=Boot2Docker\nID=boot2docker\nVERSION_ID=19.03.12\n',
    "gentoo": 'NAME=Gentoo\nID=gentoo\n',
}


def make_os_info(os_id: str, id_like: tuple[str, ...] = (), init_system: InitSystem = InitSystem.SYSTEMD) -> HostOsInfo:
    return HostOsInfo(os_release=OsRelease(id=os_id, id_like=id_like), init_system=init_system)


def make_host_runner(os_id: str = "ubuntu", init_system: str = "systemd") -> FakeCommandRunner:
    """A fake remote shell that answers the detection probes and shows the engine listening."""
    runner = FakeCommandRunner()
    runner.respond("/etc/os-release", stdout=OS_RELEASES[os_id])
    runner.respond("/run/systemd/system", stdout=f"{init_system}\n")
    runner.respond("ss -tln", stdout=ENGINE_LISTENING_OUTPUT)
    return runner


def make_auth_options(store_dir: Path, remote_options_dir: str = "/etc/docker") -> AuthOptions:
    return AuthOptions.for_host(store_dir / "certs", PurePosixPath(remote_options_dir))
