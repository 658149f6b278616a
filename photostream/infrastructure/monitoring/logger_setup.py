"""Centralized logging configuration for the PhotoStream application.

Log records go to stderr so they never interleave with the tables and panels
the CLI prints on stdout. A size-rotated file can be added with
`logging.file`. Other keys: `logging.level`, `logging.format`,
`logging.max_bytes`, `logging.backup_count`.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from photostream.infrastructure.config.settings import get_config, is_development

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 3

# Chatty third-party loggers kept at WARNING unless we are debugging
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _rotating_file_handler(log_file: str, max_bytes: int, backup_count: int) -> Optional[logging.Handler]:
    try:
        return RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8')
    except OSError as e:
        logging.getLogger(__name__).error(f"Cannot write log file {log_file}, continuing on stderr only: {e}")
        return None


def setup_logging(
    level: int,
    fmt: str = LOG_FORMAT,
    log_file: Optional[str] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> None:
    """Replaces the root logger's handlers with PhotoStream's.

    Args:
        level: Minimum level for the root logger and every handler.
        fmt: Record format shared by all handlers.
        log_file: Optional path of a size-rotated log file.
        max_bytes: Rotation threshold of the log file.
        backup_count: Rotated files kept next to the active one.
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        file_handler = _rotating_file_handler(log_file, max_bytes, backup_count)
        if file_handler is not None:
            handlers.append(file_handler)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(fmt))
        root.addHandler(handler)

    quiet_level = logging.WARNING if level > logging.DEBUG else logging.DEBUG
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).info(
        f"Logging ready: level={logging.getLevelName(level)}, file={log_file or 'none'}"
    )


def resolve_level(name: Optional[str]) -> int:
    """Maps a level name to its number; DEBUG in development, INFO otherwise when unset or unknown."""
    fallback = logging.DEBUG if is_development() else logging.INFO
    if not name:
        return fallback
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else fallback


def setup_logging_from_config() -> None:
    """Reads logging settings from configuration and applies them."""
    setup_logging(
        level=resolve_level(get_config('logging.level')),
        fmt=get_config('logging.format', LOG_FORMAT),
        log_file=get_config('logging.file'),
        max_bytes=int(get_config('logging.max_bytes', DEFAULT_MAX_BYTES)),
        backup_count=int(get_config('logging.backup_count', DEFAULT_BACKUP_COUNT)),
    )
