import json
import sys
from collections.abc import Mapping
from typing import Any
from typing import Final
from typing import assert_never

from imbue.machine.api.data_types import ActionResult
from imbue.machine.primitives import LifecycleAction
from imbue.machine.primitives import OutputFormat

_PAST_TENSE: Final[dict[LifecycleAction, str]] = {
    LifecycleAction.CREATE: "created",
    LifecycleAction.START: "started",
    LifecycleAction.STOP: "stopped",
    LifecycleAction.RESTART: "restarted",
    LifecycleAction.KILL: "killed",
    LifecycleAction.REMOVE: "removed",
    LifecycleAction.UPGRADE: "upgraded",
    LifecycleAction.PROVISION: "provisioned",
}


def _write_json_line(data: Mapping[str, Any]) -> None:
    """Write a JSON object as a line to stdout, bypassing the logger."""
    sys.stdout.write(json.dumps(data) + "\n")
    sys.stdout.flush()


def write_human_line(message: str, *args: Any) -> None:
    """Write a human-readable output line to stdout.

    Use this for command output only. Diagnostics go through logger.* (stderr).
    Accepts positional format args like loguru: write_human_line("Removed {} host(s)", count).
    """
    formatted = message.format(*args) if args else message
    sys.stdout.write(formatted + "\n")
    sys.stdout.flush()


def emit_final_json(data: Mapping[str, Any]) -> None:
    _write_json_line(data)


def emit_action_result(result: ActionResult, output_format: OutputFormat) -> None:
    """Report what an action did on each host.

    Failures are only listed here in JSON mode; in HUMAN mode the caller raises them.
    """
    match output_format:
        case OutputFormat.HUMAN:
            verb = _PAST_TENSE[result.action]
            for outcome in result.outcomes:
                if outcome.is_success:
                    write_human_line("{}: {}", outcome.host_name, verb)
        case OutputFormat.JSON:
            emit_final_json(result.model_dump(mode="json"))
        case _ as unreachable:
            assert_never(unreachable)
