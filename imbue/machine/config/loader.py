import os
import time
import tomllib
from collections.abc import Callable
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from typing import Final

import pluggy
from loguru import logger
from pydantic import ValidationError

from imbue.machine.config.data_types import MachineConfig
from imbue.machine.config.data_types import MachineContext
from imbue.machine.errors import ConfigNotFoundError
from imbue.machine.errors import ConfigParseError
from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.plugins import hookspecs
from imbue.machine.primitives import LogLevel
from imbue.machine.provision.registry import load_provisioners
from imbue.machine.remote.pyinfra_runner import build_pyinfra_command_runner

DEFAULT_CONFIG_PATH: Final[Path] = Path("~/.machine/config.toml")
CONFIG_PATH_ENV_VAR: Final[str] = "MACHINE_CONFIG"
STORE_DIR_ENV_VAR: Final[str] = "MACHINE_STORE_DIR"
LOG_LEVEL_ENV_VAR: Final[str] = "MACHINE_LOG_LEVEL"
PLUGIN_ENTRYPOINT_GROUP: Final[str] = "machine"


def find_config_path(explicit_path: Path | None, environ: Mapping[str, str]) -> Path | None:
    """Locate the config file: --config, then $MACHINE_CONFIG, then ~/.machine/config.toml.

    A file named explicitly (by flag or environment) must exist. The default file is
    optional; None means run with built-in defaults.
    """
    if explicit_path is None and environ.get(CONFIG_PATH_ENV_VAR):
        explicit_path = Path(environ[CONFIG_PATH_ENV_VAR])

    if explicit_path is not None:
        path = explicit_path.expanduser()
        if not path.is_file():
            raise ConfigNotFoundError(str(path))
        return path

    default_path = DEFAULT_CONFIG_PATH.expanduser()
    return default_path if default_path.is_file() else None


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Failed to parse {path}: {e}") from e


def parse_config(raw: Mapping[str, Any], source: str = "config") -> MachineConfig:
    try:
        return MachineConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigParseError(f"Invalid {source}: {e}") from e


def apply_env_overrides(config: MachineConfig, environ: Mapping[str, str]) -> MachineConfig:
    """Apply MACHINE_STORE_DIR and MACHINE_LOG_LEVEL on top of the file config."""
    store_dir = environ.get(STORE_DIR_ENV_VAR)
    if store_dir:
        config = config.model_copy(update={"store_dir": Path(store_dir)})

    log_level = environ.get(LOG_LEVEL_ENV_VAR)
    if log_level:
        try:
            level = LogLevel(log_level.strip().upper())
        except ValueError as e:
            raise ConfigParseError(f"Invalid {LOG_LEVEL_ENV_VAR}: {log_level}") from e
        logging_config = config.logging.model_copy(update={"console_level": level})
        config = config.model_copy(update={"logging": logging_config})
    return config


def load_config(config_path: Path | None = None, environ: Mapping[str, str] | None = None) -> MachineConfig:
    """Load the config file (if any) and apply environment overrides.

    Precedence (lowest to highest): built-in defaults, the config file, environment
    variables. Command-line flags are applied by the caller.
    """
    env = os.environ if environ is None else environ
    path = find_config_path(config_path, env)
    if path is None:
        logger.debug("No config file found; using defaults")
        config = MachineConfig()
    else:
        logger.debug("Loading config from {}", path)
        config = parse_config(_load_toml(path), source=str(path))
    return apply_env_overrides(config, env)


def create_plugin_manager() -> pluggy.PluginManager:
    """A plugin manager with the machine hookspecs and every installed plugin.

    External packages register hooks through setuptools entry points in the "machine" group.
    """
    pm = pluggy.PluginManager(PLUGIN_ENTRYPOINT_GROUP)
    pm.add_hookspecs(hookspecs)
    pm.load_setuptools_entrypoints(PLUGIN_ENTRYPOINT_GROUP)
    return pm


def build_context(
    config: MachineConfig,
    pm: pluggy.PluginManager,
    command_runner_factory: Callable[..., CommandRunnerInterface] = build_pyinfra_command_runner,
    sleep: Callable[[float], None] = time.sleep,
) -> MachineContext:
    """Freeze the provisioner registry and bundle everything operations need."""
    return MachineContext(
        config=config,
        pm=pm,
        provisioner_registry=load_provisioners(pm),
        command_runner_factory=command_runner_factory,
        sleep=sleep,
    )
