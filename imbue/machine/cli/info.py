from typing import assert_never

import click

from imbue.machine.cli.common_opts import add_common_options
from imbue.machine.cli.common_opts import get_machine_context
from imbue.machine.cli.common_opts import parse_output_format
from imbue.machine.cli.output_helpers import emit_final_json
from imbue.machine.cli.output_helpers import write_human_line
from imbue.machine.drivers.registry import backend_registry
from imbue.machine.drivers.registry import load_all_backends
from imbue.machine.hosts.store import ConfigHostStore
from imbue.machine.primitives import HostName
from imbue.machine.primitives import OutputFormat


@click.command(name="status")
@click.argument("host_name", metavar="NAME")
@add_common_options
@click.pass_context
def status(ctx: click.Context, host_name: str, output_format: str) -> None:
    """Print the state the backend reports for a host."""
    machine_ctx = get_machine_context(ctx)
    host = ConfigHostStore(machine_ctx).get_host(HostName(host_name))
    state = host.refresh_state()
    match parse_output_format(output_format):
        case OutputFormat.HUMAN:
            write_human_line(state.value)
        case OutputFormat.JSON:
            emit_final_json({"name": host.name, "driver": host.driver_name, "state": state.value})
        case _ as unreachable:
            assert_never(unreachable)


@click.command(name="url")
@click.argument("host_name", metavar="NAME")
@add_common_options
@click.pass_context
def url(ctx: click.Context, host_name: str, output_format: str) -> None:
    """Print the engine URL of a running host."""
    machine_ctx = get_machine_context(ctx)
    host_url = ConfigHostStore(machine_ctx).get_host(HostName(host_name)).get_url()
    match parse_output_format(output_format):
        case OutputFormat.HUMAN:
            write_human_line(host_url)
        case OutputFormat.JSON:
            emit_final_json({"name": host_name, "url": host_url})
        case _ as unreachable:
            assert_never(unreachable)


@click.command(name="drivers")
@add_common_options
@click.pass_context
def drivers(ctx: click.Context, output_format: str) -> None:
    """List the registered drivers and the options each accepts."""
    machine_ctx = get_machine_context(ctx)
    load_all_backends(machine_ctx.pm)
    backends = [backend_registry[name] for name in sorted(backend_registry)]
    match parse_output_format(output_format):
        case OutputFormat.HUMAN:
            for backend in backends:
                write_human_line("{:<16} {}", backend.get_name(), backend.get_description())
                for flag in backend.get_create_flags():
                    env_hint = f" [${flag.env_var}]" if flag.env_var else ""
                    write_human_line("    {:<36} {}{}", flag.name, flag.usage, env_hint)
        case OutputFormat.JSON:
            emit_final_json(
                {
                    "drivers": [
                        {
                            "name": backend.get_name(),
                            "description": backend.get_description(),
                            "options": [flag.model_dump(mode="json") for flag in backend.get_create_flags()],
                        }
                        for backend in backends
                    ]
                }
            )
        case _ as unreachable:
            assert_never(unreachable)
