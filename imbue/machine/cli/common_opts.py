from typing import Any
from typing import TypeVar

import click
from click_option_group import optgroup

from imbue.machine.config.data_types import MachineContext
from imbue.machine.primitives import OutputFormat

TDecorated = TypeVar("TDecorated")


def add_common_options(command: TDecorated) -> TDecorated:
    """Decorator adding the options every command shares, in the "Common" option group.

    - --format: Output format (human/json)
    """
    # Decorators apply bottom to top, so the group header is added last
    command = optgroup.option(
        "--format",
        "output_format",
        type=click.Choice(["human", "json"], case_sensitive=False),
        default="human",
        show_default=True,
        help="Output format for command results",
    )(command)
    command = optgroup.group("Common")(command)
    return command


def parse_output_format(raw: Any) -> OutputFormat:
    return OutputFormat(str(raw).upper())


def get_machine_context(ctx: click.Context) -> MachineContext:
    """Return the MachineContext the top-level group stored on the click context."""
    machine_ctx = ctx.find_object(MachineContext)
    if machine_ctx is None:
        raise click.UsageError("No machine context: run this command through the 'machine' group")
    return machine_ctx
