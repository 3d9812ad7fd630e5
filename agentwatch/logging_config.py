"""Logging setup for agentwatch.

The dashboard owns the whole screen, so while it runs logs go to a rotating
file in the data directory. One-shot commands may also log to stderr through
rich.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "agentwatch"


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    console: bool = False,
) -> logging.Logger:
    """Configure the agentwatch logger.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ...).
        log_file: Rotating log file path; skipped when None.
        console: Also log to stderr through rich (never while the TUI runs).

    Returns:
        The package logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=1_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(
            logging.Formatter(
                fmt="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    if console:
        logger.addHandler(
            RichHandler(
                console=Console(stderr=True),
                show_path=False,
                rich_tracebacks=False,
            )
        )

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger
