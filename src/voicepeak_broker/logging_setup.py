"""Logging configuration for the broker process."""

import logging
import sys
from logging.handlers import RotatingFileHandler

from voicepeak_broker.config import LoggingSettings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(settings: LoggingSettings) -> None:
    """Setup root logging from settings.

    Console output always goes to stderr so stdout stays free for command
    results.
    """
    formatter = logging.Formatter(LOG_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.level.upper(), logging.INFO))

    if settings.file:
        file_handler = RotatingFileHandler(
            settings.file,
            maxBytes=settings.max_size_mb * 1024 * 1024,
            backupCount=settings.backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
