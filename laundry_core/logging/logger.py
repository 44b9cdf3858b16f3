from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from laundry_core.config import LoggingConfig, ensure_directories, get_logging_config

LOGGER_NAME = "laundry_core"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_LOGGER: Optional[logging.Logger] = None


def configure_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Attach handlers to the ``laundry_core`` logger.

    Module loggers (``logging.getLogger(__name__)``) propagate here. The file
    handler rotates at 1 MB and keeps three backups.
    """
    config = config or get_logging_config()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)
    if config.log_to_file:
        ensure_directories()
        file_handler = RotatingFileHandler(config.log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    logger.setLevel(config.level)
    return logger


def get_logger() -> logging.Logger:
    global _LOGGER
    if _LOGGER is None:
        _LOGGER = configure_logging()
    return _LOGGER
