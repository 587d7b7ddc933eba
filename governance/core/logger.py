"""Logging setup for the approval service.

Every module logs through ``logging.getLogger(__name__)``; handlers are
attached once to the ``governance`` package logger, so all engine modules
share the console and rotating file output configured here.
"""

import logging
import logging.handlers
import os
from typing import Optional

from governance.core.config import Settings, get_settings

PACKAGE_LOGGER = "governance"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
ISO_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Marks handlers installed by configure_logging so a reconfigure replaces them
_HANDLER_TAG = "_governance_handler"


def parse_level(level: str) -> int:
    level_upper = (level or "").upper()
    if level_upper not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LOG_LEVELS)}")
    return getattr(logging, level_upper)


def _tagged(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_TAG, True)
    return handler


def configure_logging(
    settings: Optional[Settings] = None,
    *,
    name: str = PACKAGE_LOGGER,
    console: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach console and (optionally) rotating file handlers from settings.

    Args:
        settings: Application settings; ``log_level``, ``log_dir`` and
            ``log_to_file`` are honoured, and ``debug`` turns on SQL echo
        name: Logger to configure (the package logger by default)
        console: Log to stderr
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        The configured logger
    """
    settings = settings or get_settings()
    logger = logging.getLogger(name)
    logger.setLevel(parse_level(settings.log_level))

    for handler in [h for h in logger.handlers if getattr(h, _HANDLER_TAG, False)]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=ISO_DATE_FORMAT)

    if settings.log_to_file:
        os.makedirs(settings.log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(settings.log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(_tagged(file_handler))

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(_tagged(console_handler))

    if settings.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    return logger
