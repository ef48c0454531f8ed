"""Logging setup for the helpdesk service.

``configure_logging`` wires the ``helpdesk`` package logger from settings.
Failed audit writes are reported on ``helpdesk.audit``; with file logging on
they also go to ``audit-errors.log`` so they are not buried in request logs.
"""

import logging
import logging.handlers
import os
from typing import Optional

from helpdesk.core.config import Settings

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
ISO_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

AUDIT_LOGGER = "helpdesk.audit"
AUDIT_ERROR_FILE = "audit-errors.log"


def parse_level(level: str) -> int:
    level_upper = level.upper()
    if level_upper not in LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LEVELS)}")
    return getattr(logging, level_upper)


def _rotating_handler(path: str, formatter: logging.Formatter, max_bytes: int, backup_count: int):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setFormatter(formatter)
    return handler


def setup_logger(
    name: str,
    level: str = "INFO",
    *,
    log_file: Optional[str] = None,
    console: bool = True,
    log_format: str = DEFAULT_FORMAT,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach console and optional rotating file handlers to a logger.

    Calling it again for the same name only updates the level.

    Args:
        name: Logger name, usually a package such as ``helpdesk``
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (any case)
        log_file: Path of a rotating log file; no file output when None
        console: Log to stderr
        log_format: Format string, timestamps are ISO 8601
        max_bytes: Size at which the file is rotated
        backup_count: Rotated files kept

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(parse_level(level))
    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format, datefmt=ISO_DATE_FORMAT)
    if log_file:
        logger.addHandler(_rotating_handler(log_file, formatter, max_bytes, backup_count))
    if console:
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        logger.addHandler(stream)
    return logger


def configure_logging(settings: Settings) -> logging.Logger:
    """Configure the ``helpdesk`` logger tree from application settings."""
    log_file = os.path.join(settings.log_dir, "helpdesk.log") if settings.log_to_file else None
    logger = setup_logger("helpdesk", settings.log_level, log_file=log_file)

    if settings.log_to_file:
        audit = logging.getLogger(AUDIT_LOGGER)
        if not audit.handlers:
            handler = _rotating_handler(
                os.path.join(settings.log_dir, AUDIT_ERROR_FILE),
                logging.Formatter(DEFAULT_FORMAT, datefmt=ISO_DATE_FORMAT),
                max_bytes=10485760,
                backup_count=5,
            )
            handler.setLevel(logging.ERROR)
            audit.addHandler(handler)
    return logger
