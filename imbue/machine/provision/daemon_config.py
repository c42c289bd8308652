"""Strategies that turn the daemon flag set into files an init system understands.

Exactly one strategy is used per provisioning run. Each one renders its files from
build_daemon_flags(), so the shapes differ only in how the flags are delivered.
"""

from abc import ABC
from abc import abstractmethod
from pathlib import PurePosixPath
from typing import Final

from pydantic import Field

from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.primitives import DaemonConfigShape
from imbue.machine.primitives import InitSystem
from imbue.machine.provision.engine_config import DaemonConfig
from imbue.machine.provision.engine_config import DaemonConfigArtifact
from imbue.machine.provision.engine_config import EngineConfigContext
from imbue.machine.provision.engine_config import build_daemon_flags
from imbue.machine.provision.engine_config import build_env_assignments
from imbue.machine.utils.model_base import FrozenModel
from imbue.machine.utils.model_base import pure
from imbue.machine.utils.shell import build_write_file_command

DEFAULT_FLAT_OPTIONS_FILE: Final[PurePosixPath] = PurePosixPath("/etc/default/docker")
BOOT2DOCKER_PROFILE: Final[PurePosixPath] = PurePosixPath("/var/lib/boot2docker/profile")
SYSTEMD_OVERRIDE_PATH: Final[PurePosixPath] = PurePosixPath("/etc/systemd/system/docker.service.d/10-machine.conf")
SYSTEMD_FLAG_FILE_NAME: Final[str] = "machine-daemon.env"
ENGINE_BINARY: Final[str] = "/usr/bin/dockerd"


class DaemonConfigStrategyInterface(FrozenModel, ABC):
    """Renders the daemon configuration for one init-system integration shape."""

    @property
    @abstractmethod
    def shape(self) -> DaemonConfigShape:
        ...

    @abstractmethod
    def generate(self, context: EngineConfigContext) -> DaemonConfig:
        """Render the configuration artifacts. Pure: nothing is written."""
        ...


class FlatOptionsFileStrategy(DaemonConfigStrategyInterface):
    """Writes the whole flag set into one DOCKER_OPTS environment file."""

    options_file: PurePosixPath = Field(default=DEFAULT_FLAT_OPTIONS_FILE, description="Remote options file")

    @property
    def shape(self) -> DaemonConfigShape:
        return DaemonConfigShape.FLAT

    def generate(self, context: EngineConfigContext) -> DaemonConfig:
        content = render_flat_options(build_daemon_flags(context), context.engine_options.env)
        return DaemonConfig(
            shape=self.shape,
            artifacts=(DaemonConfigArtifact(path=self.options_file, content=content),),
        )


class Boot2DockerProfileStrategy(DaemonConfigStrategyInterface):
    """Writes boot2docker's profile, which its init script sources before starting the daemon.

    The profile splits the flag set: the listening address, storage driver and TLS
    material have dedicated variables, every other flag goes into EXTRA_ARGS.
    """

    profile_path: PurePosixPath = Field(default=BOOT2DOCKER_PROFILE, description="Remote profile path")

    @property
    def shape(self) -> DaemonConfigShape:
        return DaemonConfigShape.FLAT

    def generate(self, context: EngineConfigContext) -> DaemonConfig:
        return DaemonConfig(
            shape=self.shape,
            artifacts=(DaemonConfigArtifact(path=self.profile_path, content=render_boot2docker_profile(context)),),
        )


class SystemdDropInStrategy(DaemonConfigStrategyInterface):
    """Writes a unit override that sources a separately managed flag file.

    The flag file holds the same flag set the flat strategy writes; the override only
    points the unit at it. systemd must reload its units before the daemon restarts.
    """

    override_path: PurePosixPath = Field(default=SYSTEMD_OVERRIDE_PATH, description="Unit override fragment")
    flag_file_name: str = Field(default=SYSTEMD_FLAG_FILE_NAME, description="Flag file, under the options dir")

    @property
    def shape(self) -> DaemonConfigShape:
        return DaemonConfigShape.SYSTEMD_DROP_IN

    def generate(self, context: EngineConfigContext) -> DaemonConfig:
        flag_file = context.docker_options_dir / self.flag_file_name
        return DaemonConfig(
            shape=self.shape,
            artifacts=(
                DaemonConfigArtifact(
                    path=flag_file,
                    content=render_systemd_flag_file(build_daemon_flags(context), context.engine_options.env),
                ),
                DaemonConfigArtifact(path=self.override_path, content=render_systemd_override(flag_file)),
            ),
            reload_commands=("sudo systemctl daemon-reload",),
        )


@pure
def select_daemon_config_strategy(init_system: InitSystem) -> DaemonConfigStrategyInterface:
    """The default strategy for an init system: a drop-in under systemd, a flat file otherwise."""
    if init_system == InitSystem.SYSTEMD:
        return SystemdDropInStrategy()
    return FlatOptionsFileStrategy()


@pure
def render_flat_options(flags: tuple[str, ...], env: tuple[str, ...]) -> str:
    lines = ["DOCKER_OPTS='", *flags, "'"]
    lines.extend(f'export {key}="{value}"' for key, value in build_env_assignments(env))
    return "\n".join(lines) + "\n"


@pure
def render_systemd_flag_file(flags: tuple[str, ...], env: tuple[str, ...]) -> str:
    lines = ['DOCKER_OPTS="' + " ".join(flags) + '"']
    lines.extend(f'{key}="{value}"' for key, value in build_env_assignments(env))
    return "\n".join(lines) + "\n"


@pure
def render_systemd_override(flag_file: PurePosixPath) -> str:
    return (
        "[Service]\n"
        f"EnvironmentFile={flag_file}\n"
        "ExecStart=\n"
        f"ExecStart={ENGINE_BINARY} $DOCKER_OPTS\n"
        "ExecReload=/bin/kill -s HUP $MAINPID\n"
    )


@pure
def render_boot2docker_profile(context: EngineConfigContext) -> str:
    flags = build_daemon_flags(context)
    auth = context.auth_options
    # The init script already passes the listening sockets, storage driver and TLS flags
    handled_prefixes = ("-H ", "--storage-driver ", "--tlsverify", "--tlscacert ", "--tlscert ", "--tlskey ")
    extra_args = [flag for flag in flags if not flag.startswith(handled_prefixes)]
    lines = [
        "EXTRA_ARGS='",
        *extra_args,
        "'",
        f"CACERT={auth.ca_cert_remote_path}",
        f"DOCKER_HOST='-H tcp://0.0.0.0:{context.engine_port}'",
        f"DOCKER_STORAGE={context.engine_options.storage_driver}",
        "DOCKER_TLS=auto",
        f"SERVERKEY={auth.server_key_remote_path}",
        f"SERVERCERT={auth.server_cert_remote_path}",
    ]
    lines.extend(f'export {key}="{value}"' for key, value in build_env_assignments(context.engine_options.env))
    return "\n".join(lines) + "\n"


def write_daemon_config(runner: CommandRunnerInterface, config: DaemonConfig) -> None:
    """Write every artifact, then run the reload commands. Stops at the first failure."""
    for artifact in config.artifacts:
        runner.run_checked(build_write_file_command(artifact.path, artifact.content, mode=artifact.mode))
    for command in config.reload_commands:
        runner.run_checked(command)
