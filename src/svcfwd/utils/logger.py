"""
Logging utilities for svcfwd, built on loguru.

Modules obtain a bound logger through ``get_logger(__name__)``;
``configure_logging`` installs the console (and optional file) sinks once
at startup.

Usage:
    from svcfwd.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("ready")
"""

from __future__ import annotations

import contextlib
import traceback
from typing import TYPE_CHECKING

from loguru import logger as _logger
from rich.console import Console
from rich.logging import RichHandler

from svcfwd.models.enums import LogLevel

if TYPE_CHECKING:
    from loguru import Logger

ROOT_LOGGER_NAME = "svcfwd"

_LEVELS = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name} - {message}"
)

# Sinks installed by configure_logging, replaced on every call
_sink_ids: list[int] = []


def get_logger(name: str) -> Logger:
    """Get a logger bound to a component name below ``svcfwd``."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return _logger.bind(component=name)


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    log_file: str = "",
    console: Console | None = None,
) -> None:
    """
    Install the svcfwd sinks.

    Args:
        level: Minimum level for all sinks.
        log_file: Optional path, also receives every record in plain text.
        console: Console to render to (stderr by default).
    """
    level = LogLevel(level)
    full = level == LogLevel.FULL

    # loguru's default stderr sink has id 0
    with contextlib.suppress(ValueError):
        _logger.remove(0)
    while _sink_ids:
        _logger.remove(_sink_ids.pop())

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    _sink_ids.append(
        _logger.add(
            rich_handler,
            level=_LEVELS[level],
            format="{message}",
            backtrace=full,
            diagnose=full,
        )
    )

    if log_file:
        _sink_ids.append(
            _logger.add(
                log_file,
                level=_LEVELS[level],
                format=_FILE_FORMAT,
                backtrace=full,
                diagnose=full,
            )
        )


def reset_logging() -> None:
    """Remove the sinks installed by ``configure_logging``."""
    while _sink_ids:
        _logger.remove(_sink_ids.pop())


def format_traceback(exc: BaseException) -> str:
    """Render an exception with its traceback."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
