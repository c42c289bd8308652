"""Shell command builders shared by drivers and provisioners.

Every builder returns a single command string meant to be run through a
CommandRunnerInterface, which wraps it in the remote login shell.
"""

from pathlib import PurePosixPath

from imbue.machine.utils.model_base import pure


@pure
def quote(value: str) -> str:
    """Single-quote a value for sh, escaping embedded single quotes.

    e.g. key'with'quotes becomes 'key'"'"'with'"'"'quotes'
    """
    return "'" + value.replace("'", "'\"'\"'") + "'"


@pure
def join_commands(*commands: str) -> str:
    """Chain commands so the chain stops at the first failing command."""
    return " && ".join(command for command in commands if command)


@pure
def build_write_file_command(
    path: PurePosixPath,
    content: str,
    mode: int | None = None,
    owner: str | None = None,
) -> str:
    """Build a command that writes content to a root-owned path with sudo.

    The parent directory is created first. Mode and owner are applied after the
    write so the file never ends up with the wrong permissions once the command succeeds.
    """
    quoted_path = quote(str(path))
    return join_commands(
        f"sudo mkdir -p {quote(str(path.parent))}",
        f"printf '%s' {quote(content)} | sudo tee {quoted_path} > /dev/null",
        f"sudo chown {owner} {quoted_path}" if owner is not None else "",
        f"sudo chmod {mode:o} {quoted_path}" if mode is not None else "",
    )
