from imbue.machine.primitives import InitSystem
from imbue.machine.provision.os_release import parse_init_system
from imbue.machine.provision.os_release import parse_os_release

UBUNTU_OS_RELEASE = """NAME="Ubuntu"
VERSION="22.04.3 LTS (Jammy Jellyfish)"
ID=ubuntu
ID_LIKE=debian
PRETTY_NAME="Ubuntu 22.04.3 LTS"
VERSION_ID="22.04"
"""

CENTOS_OS_RELEASE = """NAME="CentOS Stream"
ID="centos"
ID_LIKE="rhel fedora"
VERSION_ID="9"
"""


def test_parses_unquoted_and_quoted_values() -> None:
    release = parse_os_release(UBUNTU_OS_RELEASE)

    assert release.id == "ubuntu"
    assert release.id_like == ("debian",)
    assert release.version_id == "22.04"
    assert release.pretty_name == "Ubuntu 22.04.3 LTS"


def test_id_like_keeps_order() -> None:
    assert parse_os_release(CENTOS_OS_RELEASE).id_like == ("rhel", "fedora")


def test_ignores_comments_and_blank_lines() -> None:
    release = parse_os_release("# comment\n\nID=arch\nnot a field\n")

    assert release.id == "arch"
    assert release.id_like == ()


def test_missing_id_defaults_to_linux() -> None:
    assert parse_os_release('NAME="Mystery"\n').id == "linux"


def test_init_system_probe_output() -> None:
    assert parse_init_system("systemd\n") == InitSystem.SYSTEMD
    assert parse_init_system("upstart") == InitSystem.UPSTART
    assert parse_init_system("") == InitSystem.SYSVINIT
