"""Logging for modulegate.

Components log through ``get_logger``, which places them below the
``modulegate`` package logger. Handlers live on the package logger only and
are attached once, by ``configure_logging`` at API startup.
"""

import logging
import logging.handlers
import os
from typing import Optional

PACKAGE_LOGGER = "modulegate"

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"  # ISO 8601

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _parse_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    return value


def setup_logger(
    name: str = PACKAGE_LOGGER,
    level: str = "INFO",
    log_dir: Optional[str] = None,
) -> logging.Logger:
    """Attach a console handler, and a rotating file handler when ``log_dir`` is set.

    The file is ``<log_dir>/<name>.log``. Calling again only adjusts the level.

    Raises:
        ValueError: If ``level`` is not a standard logging level
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def configure_logging(settings) -> logging.Logger:
    """Configure the package logger from ``Settings`` (log_level, log_to_file, log_dir)."""
    return setup_logger(
        PACKAGE_LOGGER,
        level=settings.log_level,
        log_dir=settings.log_dir if settings.log_to_file else None,
    )


def get_logger(name: str) -> logging.Logger:
    """Component logger, e.g. ``get_logger("capability_registry")``."""
    if name == PACKAGE_LOGGER or name.startswith(f"{PACKAGE_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
