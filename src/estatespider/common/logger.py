"""Unified logging

Project-wide logger configuration with Rich console output.
"""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler


# shared console instance
console = Console()

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_log_level() -> int:
    """Read the log level from the environment

    Returns:
        logging level constant
    """
    level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    return LOG_LEVEL_MAP.get(level_str, logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Return a logger with the project's Rich handler attached

    Every module should obtain its logger through this function so output
    format stays consistent.

    Args:
        name: logger name, usually ``__name__``

    Returns:
        configured logger

    Example:
        >>> from estatespider.common.logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("page 3: 24 raw, 5 admitted")
    """
    logger = logging.getLogger(name)

    # already configured
    if logger.handlers:
        return logger

    log_level = get_log_level()
    logger.setLevel(log_level)

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=os.getenv("LOG_SHOW_LOCALS", "false").lower() == "true",
        markup=False,
    )
    rich_handler.setLevel(log_level)
    rich_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    logger.addHandler(rich_handler)
    logger.propagate = False

    return logger


def setup_file_logging(
    logger: logging.Logger,
    log_file: str,
    level: int = logging.DEBUG,
) -> None:
    """Add a file handler to a logger

    Args:
        logger: logger instance
        log_file: path of the log file
        level: level for the file handler
    """
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler.setFormatter(formatter)

    logger.addHandler(file_handler)

