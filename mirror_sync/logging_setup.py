"""Logging setup for the mirror engine."""

import getpass
import logging
import logging.handlers
from pathlib import Path
from typing import Optional

LOGGER_NAME = "mirror_sync"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return "unknown"


def _file_handler(
    log_path: Path, max_bytes: int, backup_count: int, rotation_enabled: bool
) -> logging.Handler:
    if not rotation_enabled:
        return logging.FileHandler(log_path, encoding="utf-8")
    return logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )


def setup_logging(
    log_file: str,
    log_level: str = "INFO",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    rotation_enabled: bool = True,
    mirror_name: Optional[str] = None,
) -> logging.Logger:
    """Attach a file and a console handler to the mirror logger.

    Calling it again replaces the handlers of the previous call.

    Args:
        log_file: Path to log file, its folder is created when missing
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        max_bytes: Max size of log file before rotation (in bytes)
        backup_count: Number of rotated files to keep
        rotation_enabled: Use a rotating file handler
        mirror_name: Tag every record with this mirror name

    Returns:
        Configured logger instance

    Raises:
        ValueError: If log_level is not a known level name
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    tag = _current_user() if mirror_name is None else f"{_current_user()}:{mirror_name}"
    formatter = logging.Formatter(
        f"%(asctime)s - %(name)s - %(levelname)s - [{tag}] - %(message)s",
        datefmt=DATE_FORMAT,
    )

    for handler in (
        _file_handler(log_path, max_bytes, backup_count, rotation_enabled),
        logging.StreamHandler(),
    ):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the mirror logger shared by all modules."""
    return logging.getLogger(LOGGER_NAME)
