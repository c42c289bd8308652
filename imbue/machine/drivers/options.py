from collections.abc import Mapping
from collections.abc import Sequence
from typing import Any
from typing import Final

from imbue.machine.errors import DriverOptionError
from imbue.machine.interfaces.data_types import CreateFlag
from imbue.machine.primitives import FlagKind
from imbue.machine.utils.model_base import pure

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "no", "off", ""})


@pure
def resolve_create_options(
    flags: Sequence[CreateFlag],
    explicit: Mapping[str, Any],
    environ: Mapping[str, str],
) -> dict[str, Any]:
    """Resolve the value of every create flag.

    Precedence: an explicitly configured value, then the flag's environment variable,
    then the flag's default. Values are coerced to the flag's kind. Explicit options
    that no flag declares are rejected.
    """
    flags_by_name = {flag.name: flag for flag in flags}
    unknown = sorted(set(explicit) - set(flags_by_name))
    if unknown:
        raise DriverOptionError(unknown[0], f"not an option of this driver (known: {', '.join(sorted(flags_by_name))})")

    resolved: dict[str, Any] = {}
    for flag in flags:
        if flag.name in explicit:
            raw = explicit[flag.name]
        elif flag.env_var is not None and flag.env_var in environ:
            raw = environ[flag.env_var]
        else:
            raw = flag.default
        resolved[flag.name] = coerce_flag_value(flag, raw)
    return resolved


@pure
def coerce_flag_value(flag: CreateFlag, raw: Any) -> Any:
    if raw is None:
        return () if flag.kind == FlagKind.STRING_LIST else None
    match flag.kind:
        case FlagKind.STRING:
            return str(raw)
        case FlagKind.INT:
            return _coerce_int(flag.name, raw)
        case FlagKind.BOOL:
            return _coerce_bool(flag.name, raw)
        case FlagKind.STRING_LIST:
            return _coerce_string_list(raw)
        case _:
            raise DriverOptionError(flag.name, f"unsupported kind {flag.kind}")


@pure
def _coerce_int(name: str, raw: Any) -> int:
    if isinstance(raw, bool):
        raise DriverOptionError(name, f"expected an integer, got {raw!r}")
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError as e:
        raise DriverOptionError(name, f"expected an integer, got {raw!r}") from e


@pure
def _coerce_bool(name: str, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    word = str(raw).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise DriverOptionError(name, f"expected a boolean, got {raw!r}")


@pure
def _coerce_string_list(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, str):
        return tuple(part.strip() for part in raw.split(",") if part.strip())
    return tuple(str(item) for item in raw)
