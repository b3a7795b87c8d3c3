"""Centralized logging configuration.

Application modules log under the ``giveaway`` namespace. ``setup_logger``
installs one console handler (and optionally a rotating file handler) on that
namespace and on the third-party loggers that report on the bot and the
admin panel, so every line ends up in the same place with the same layout.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

ROOT_LOGGER = "giveaway"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

# aiogram reports polling and API failures, aiohttp.access logs panel hits
LIBRARY_LOGGERS = ("aiogram", "aiohttp.access", "aiohttp.server")


class ColoredFormatter(logging.Formatter):
    """Colored log formatter for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        # Copy so the file handler still sees the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def _console_handler(level: int, colored: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if colored and sys.stdout.isatty():
        handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(log_file: str, level: int) -> logging.Handler:
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
    return handler


def setup_logger(
    name: str = ROOT_LOGGER,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    colored: bool = True,
) -> logging.Logger:
    """Configure the application logger and the library loggers.

    Args:
        name: Application logger namespace
        level: Level for application loggers; libraries log at WARNING
            unless ``level`` is DEBUG
        log_file: Optional path of a size-rotated log file
        colored: Use colored level names when stdout is a terminal

    Returns:
        The configured application logger
    """
    handlers: List[logging.Handler] = [_console_handler(level, colored)]
    if log_file:
        handlers.append(_file_handler(log_file, level))

    library_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    targets = [(name, level)] + [(library, library_level) for library in LIBRARY_LOGGERS]
    for target, target_level in targets:
        target_logger = logging.getLogger(target)
        target_logger.setLevel(target_level)
        target_logger.handlers.clear()
        for handler in handlers:
            target_logger.addHandler(handler)
        target_logger.propagate = False

    return logging.getLogger(name)


def get_logger(name: str) -> logging.Logger:
    """Get a logger by name.

    Module loggers live under the ``giveaway`` namespace so that the handlers
    installed by :func:`setup_logger` apply to every component.
    """
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
