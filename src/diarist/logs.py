"""Logging setup for command-line runs."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from diarist.config.models import LoggingSettings

LOG_FILENAME = "diarist.log"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: LoggingSettings, log_path: Path) -> logging.Logger:
    """Attach a rotating file handler to the ``diarist`` logger.

    Calling this again replaces the previously installed handler.
    """
    logger = logging.getLogger("diarist")
    logger.setLevel(settings.level)
    for handler in list(logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            logger.removeHandler(handler)
            handler.close()

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=settings.max_size_mb * 1024 * 1024,
        backupCount=settings.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    return logger


__all__ = ["configure_logging", "LOG_FILENAME"]
