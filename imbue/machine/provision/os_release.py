import shlex

from imbue.machine.interfaces.data_types import OsRelease
from imbue.machine.primitives import InitSystem
from imbue.machine.utils.model_base import pure


@pure
def parse_os_release_fields(text: str) -> dict[str, str]:
    """Parse os-release KEY=value lines, unquoting values the way sh would."""
    fields: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, separator, value = line.partition("=")
        if not separator:
            continue
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value.strip("'\"")]
        fields[key.strip()] = " ".join(parts)
    return fields


@pure
def parse_os_release(text: str) -> OsRelease:
    fields = parse_os_release_fields(text)
    return OsRelease(
        # os-release(5): ID defaults to "linux"
        id=fields.get("ID", "linux").lower(),
        id_like=tuple(family.lower() for family in fields.get("ID_LIKE", "").split()),
        version_id=fields.get("VERSION_ID", ""),
        name=fields.get("NAME", ""),
        pretty_name=fields.get("PRETTY_NAME", ""),
    )


@pure
def parse_init_system(text: str) -> InitSystem:
    """Interpret the output of the init-system probe; anything unrecognised counts as sysvinit."""
    word = text.strip().lower()
    if word == "systemd":
        return InitSystem.SYSTEMD
    if word == "upstart":
        return InitSystem.UPSTART
    return InitSystem.SYSVINIT
