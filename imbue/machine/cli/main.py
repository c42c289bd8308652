from pathlib import Path

import click

from imbue.machine.cli.info import drivers
from imbue.machine.cli.info import status
from imbue.machine.cli.info import url
from imbue.machine.cli.lifecycle import create
from imbue.machine.cli.lifecycle import kill
from imbue.machine.cli.lifecycle import provision
from imbue.machine.cli.lifecycle import remove
from imbue.machine.cli.lifecycle import restart
from imbue.machine.cli.lifecycle import start
from imbue.machine.cli.lifecycle import stop
from imbue.machine.cli.lifecycle import upgrade
from imbue.machine.config.data_types import MachineContext
from imbue.machine.config.loader import build_context
from imbue.machine.config.loader import create_plugin_manager
from imbue.machine.config.loader import load_config
from imbue.machine.primitives import LogLevel
from imbue.machine.utils.logging import setup_logging


@click.group(name="machine")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file [default: $MACHINE_CONFIG, then ~/.machine/config.toml]",
)
@click.option(
    "--log-level",
    type=click.Choice([level.value for level in LogLevel], case_sensitive=False),
    default=None,
    help="Console log level (overrides the config and $MACHINE_LOG_LEVEL)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """Create, provision and operate container-engine hosts."""
    # Callers that already built a context (tests, embedding programs) pass it as obj
    if isinstance(ctx.obj, MachineContext):
        return

    config = load_config(config_path)
    if log_level is not None:
        logging_config = config.logging.model_copy(update={"console_level": LogLevel(log_level.upper())})
        config = config.model_copy(update={"logging": logging_config})
    setup_logging(config.logging, config.store_dir)
    ctx.obj = build_context(config, create_plugin_manager())


# Add built-in commands to the CLI group
BUILTIN_COMMANDS: list[click.Command] = [
    create,
    start,
    stop,
    restart,
    kill,
    remove,
    upgrade,
    provision,
    status,
    url,
    drivers,
]

for cmd in BUILTIN_COMMANDS:
    cli.add_command(cmd)
