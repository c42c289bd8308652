from collections.abc import Sequence
from typing import Any

import click
from click_option_group import optgroup

from imbue.machine.api.lifecycle import run_action
from imbue.machine.cli.common_opts import add_common_options
from imbue.machine.cli.common_opts import get_machine_context
from imbue.machine.cli.common_opts import parse_output_format
from imbue.machine.cli.output_helpers import emit_action_result
from imbue.machine.hosts.store import ConfigHostStore
from imbue.machine.primitives import LifecycleAction


def _run_lifecycle_command(
    ctx: click.Context,
    action: LifecycleAction,
    host_names: Sequence[str],
    timeout: float | None,
    output_format: Any,
    regenerate_certs: bool = False,
) -> None:
    machine_ctx = get_machine_context(ctx)
    result = run_action(
        action,
        host_names,
        machine_ctx,
        ConfigHostStore(machine_ctx),
        timeout_seconds=timeout,
        regenerate_certs=regenerate_certs,
    )
    emit_action_result(result, parse_output_format(output_format))
    result.raise_if_failed()


def _timeout_option(command: Any) -> Any:
    command = optgroup.option(
        "--timeout",
        type=click.FloatRange(min=0.0),
        default=None,
        help="Seconds to wait for every host to finish [default: action_timeout_seconds from the config]",
    )(command)
    return optgroup.group("Behavior")(command)


def _make_lifecycle_command(action: LifecycleAction, name: str, help_text: str) -> click.Command:
    @click.command(name=name, help=help_text)
    @click.argument("host_names", nargs=-1, required=True, metavar="NAME...")
    @_timeout_option
    @add_common_options
    @click.pass_context
    def command(ctx: click.Context, host_names: tuple[str, ...], timeout: float | None, output_format: str) -> None:
        _run_lifecycle_command(ctx, action, host_names, timeout, output_format)

    return command


create = _make_lifecycle_command(
    LifecycleAction.CREATE,
    "create",
    "Create the named hosts, wait for them to boot, then provision them.",
)
start = _make_lifecycle_command(LifecycleAction.START, "start", "Power on the named hosts.")
stop = _make_lifecycle_command(LifecycleAction.STOP, "stop", "Gracefully shut down the named hosts.")
restart = _make_lifecycle_command(
    LifecycleAction.RESTART,
    "restart",
    "Restart the named hosts, forcing a power cycle if a graceful restart does not take.",
)
kill = _make_lifecycle_command(LifecycleAction.KILL, "kill", "Power off the named hosts immediately.")
remove = _make_lifecycle_command(
    LifecycleAction.REMOVE,
    "rm",
    "Delete the named hosts' backend resources and local stores.",
)
upgrade = _make_lifecycle_command(LifecycleAction.UPGRADE, "upgrade", "Upgrade the named hosts' boot image.")


@click.command(name="provision")
@click.argument("host_names", nargs=-1, required=True, metavar="NAME...")
@optgroup.group("Certificates")
@optgroup.option(
    "--regenerate-certs",
    is_flag=True,
    help="Replace each host's certificate set (CA included) even if it is still usable",
)
@_timeout_option
@add_common_options
@click.pass_context
def provision(
    ctx: click.Context,
    host_names: tuple[str, ...],
    regenerate_certs: bool,
    timeout: float | None,
    output_format: str,
) -> None:
    """Re-run provisioning on the named hosts, which must be running."""
    _run_lifecycle_command(
        ctx,
        LifecycleAction.PROVISION,
        host_names,
        timeout,
        output_format,
        regenerate_certs=regenerate_certs,
    )
