"""Loguru logging configuration.

Every record carries a ``component`` extra (``api``, ``worker``,
``scheduler``...) so interleaved output from the scheduler loop and request
handlers can be told apart.  Records default to the ``app`` component.
"""

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger

DEFAULT_COMPONENT = "app"

_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[component]:<9} | "
    "{name}:{function}:{line} | {message}"
)


def setup_logging(log_level: str = "INFO", log_dir: str | None = None, *, json_logs: bool = False) -> None:
    """Install the stderr sink and, optionally, a rotating file sink.

    Args:
        log_level: Minimum log level to emit.
        log_dir: Directory for ``listing-geocoder.log``.  The file is rotated
            daily and kept for 14 days.
        json_logs: Serialize stderr records as JSON lines.
    """
    level = log_level.upper()
    logger.remove()
    logger.configure(extra={"component": DEFAULT_COMPONENT})

    if json_logs:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=_LOG_FORMAT)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "listing-geocoder.log",
            level=level,
            format=_LOG_FORMAT,
            rotation="00:00",
            retention="14 days",
            enqueue=True,
        )


def component_logger(component: str) -> "Logger":
    """Return a logger whose records are tagged with ``component``."""
    return logger.bind(component=component)
