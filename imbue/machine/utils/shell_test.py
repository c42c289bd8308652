from pathlib import PurePosixPath

from imbue.machine.utils.shell import build_write_file_command
from imbue.machine.utils.shell import join_commands
from imbue.machine.utils.shell import quote


def test_quote_escapes_single_quotes() -> None:
    assert quote("it's") == "'it'\"'\"'s'"


def test_join_commands_drops_empty_parts() -> None:
    assert join_commands("a", "", "b") == "a && b"


def test_build_write_file_command_sets_owner_and_mode() -> None:
    command = build_write_file_command(PurePosixPath("/etc/docker/ca.pem"), "PEM", mode=0o600, owner="root:root")

    assert command == (
        "sudo mkdir -p '/etc/docker' && "
        "printf '%s' 'PEM' | sudo tee '/etc/docker/ca.pem' > /dev/null && "
        "sudo chown root:root '/etc/docker/ca.pem' && "
        "sudo chmod 600 '/etc/docker/ca.pem'"
    )


def test_build_write_file_command_without_mode() -> None:
    command = build_write_file_command(PurePosixPath("/etc/default/docker"), "DOCKER_OPTS=''")

    assert "chmod" not in command
    assert "chown" not in command
