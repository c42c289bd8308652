from pathlib import PurePosixPath
from urllib.parse import urlparse

from loguru import logger

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.config.data_types import SwarmOptions
from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.utils.model_base import pure
from imbue.machine.utils.shell import quote


@pure
def build_swarm_commands(
    swarm_options: SwarmOptions,
    auth_options: AuthOptions,
    docker_options_dir: PurePosixPath,
    host_ip: str,
    engine_port: int,
) -> tuple[str, ...]:
    """The container runs that join a host to its swarm cluster, manager first."""
    if not swarm_options.is_swarm:
        return ()

    experimental = ("--experimental",) if swarm_options.is_experimental else ()
    discovery = (quote(swarm_options.discovery),) if swarm_options.discovery else ()
    commands = []

    if swarm_options.is_master:
        master_port = urlparse(swarm_options.master_host).port or 3376
        manage_args = [
            *experimental,
            "manage",
            "--tlsverify",
            f"--tlscacert={auth_options.ca_cert_remote_path}",
            f"--tlscert={auth_options.server_cert_remote_path}",
            f"--tlskey={auth_options.server_key_remote_path}",
            f"-H {swarm_options.master_host}",
            f"--strategy {swarm_options.strategy}",
            *swarm_options.master_options,
            *discovery,
        ]
        commands.append(
            "sudo docker run -d --restart=always --net=bridge --name swarm-agent-master"
            f" -p {master_port}:{master_port} -v {docker_options_dir}:{docker_options_dir}"
            f" {swarm_options.image} {' '.join(manage_args)}"
        )

    join_args = [
        *experimental,
        "join",
        f"--advertise {host_ip}:{engine_port}",
        *swarm_options.agent_options,
        *discovery,
    ]
    commands.append(
        "sudo docker run -d --restart=always --net=bridge --name swarm-agent "
        f"{swarm_options.image} {' '.join(join_args)}"
    )
    return tuple(commands)


def configure_swarm(
    runner: CommandRunnerInterface,
    swarm_options: SwarmOptions,
    auth_options: AuthOptions,
    docker_options_dir: PurePosixPath,
    host_ip: str,
    engine_port: int,
) -> None:
    commands = build_swarm_commands(swarm_options, auth_options, docker_options_dir, host_ip, engine_port)
    if not commands:
        logger.debug("Swarm not requested; skipping")
        return
    for command in commands:
        runner.run_checked(command)
