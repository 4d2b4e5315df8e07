"""Loguru setup. Every line carries the run it belongs to, or '-' outside a run."""

import sys
from pathlib import Path
from typing import Any, Optional, Union

from loguru import logger

NO_RUN = "-"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[run_id]}</magenta> | <cyan>{extra[name]}</cyan> | <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[run_id]} | {name}:{function}:{line} | {message} | {extra}"


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """
    Route pipeline logs to stderr and, optionally, a rotating file.

    Args:
        log_level: Minimum level (DEBUG shows ffmpeg stderr and per-query Pexels results)
        log_file: Optional path to a log file
        rotation: Size at which the log file rotates
        retention: How long rotated files are kept
    """
    logger.remove()
    logger.configure(extra={"run_id": NO_RUN, "name": "stockshorts"})

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level.upper(), colorize=True)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format=FILE_FORMAT,
            level=log_level.upper(),
            rotation=rotation,
            retention=retention,
            compression="zip",
            enqueue=True,
        )


def get_logger(name: str, **context: Any) -> Any:
    """
    Logger bound to a module name and optional run context.

    Args:
        name: Logger name (typically __name__)
        **context: Extra fields such as run_id and topic

    Returns:
        Bound loguru logger
    """
    return logger.bind(name=name, **context)


setup_logging()
