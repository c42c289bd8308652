import functools
import inspect
import sys
import time
from collections.abc import Callable
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any
from typing import Final
from typing import ParamSpec
from typing import TypeVar

from loguru import logger

from imbue.machine.config.data_types import LoggingConfig
from imbue.machine.primitives import LogLevel
from imbue.machine.utils.model_base import pure

_LEVEL_MAP: Final[dict[LogLevel, str]] = {
    LogLevel.TRACE: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
    LogLevel.ERROR: "ERROR",
}

_STDERR_FORMAT: Final[str] = (
    "<level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)

_MAX_LOG_VALUE_REPR_LENGTH: Final[int] = 200


def setup_logging(config: LoggingConfig, store_dir: Path) -> None:
    """Configure loguru sinks.

    Sets up:
    - stderr logging at the configured console level
    - serialized file logging with size-based rotation, when a log file is configured
      (relative paths are resolved against the store directory)
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=_LEVEL_MAP[config.console_level],
        format=_STDERR_FORMAT,
        colorize=True,
        diagnose=False,
    )

    if config.log_file is None:
        return

    log_file = resolve_log_file(config.log_file, store_dir)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        level=_LEVEL_MAP[config.file_level],
        format="{message}",
        serialize=True,
        diagnose=False,
        rotation=f"{config.max_log_size_mb} MB",
    )


@pure
def resolve_log_file(log_file: Path, store_dir: Path) -> Path:
    """Resolve a configured log file path, treating relative paths as relative to the store directory."""
    expanded = log_file.expanduser()
    if expanded.is_absolute():
        return expanded
    return store_dir.expanduser() / expanded


P = ParamSpec("P")
R = TypeVar("R")


@pure
def _format_arg_value(value: Any) -> str:
    """Format an argument value for logging, truncating if too long."""
    str_value = repr(value)
    if len(str_value) > _MAX_LOG_VALUE_REPR_LENGTH:
        return str_value[: _MAX_LOG_VALUE_REPR_LENGTH - 3] + "..."
    return str_value


def log_call(func: Callable[P, R]) -> Callable[P, R]:
    """Decorator that logs calls of an API entry point with their arguments at debug level."""
    func_name = getattr(func, "__name__", repr(func))

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        bound_args = inspect.signature(func).bind(*args, **kwargs)
        bound_args.apply_defaults()
        log_fields = {name: _format_arg_value(value) for name, value in bound_args.arguments.items()}
        logger.debug("Calling {}", func_name, **log_fields)

        start_time = time.monotonic()
        result = func(*args, **kwargs)
        elapsed = time.monotonic() - start_time
        logger.trace(f"Calling {func_name} [done in {elapsed:.5f} sec]", result=_format_arg_value(result))
        return result

    return wrapper


@contextmanager
def log_span(message: str, *args: Any, **context: Any) -> Iterator[None]:
    """Log a debug message on entry and a trace message with timing on exit.

    Keyword arguments are bound with logger.contextualize so every message logged
    inside the span carries them (e.g. host=...).
    """
    with logger.contextualize(**context):
        logger.debug(message, *args)
        start_time = time.monotonic()
        try:
            yield
        except BaseException:
            elapsed = time.monotonic() - start_time
            logger.trace(message + " [failed after {:.5f} sec]", *args, elapsed)
            raise
        else:
            elapsed = time.monotonic() - start_time
            logger.trace(message + " [done in {:.5f} sec]", *args, elapsed)
