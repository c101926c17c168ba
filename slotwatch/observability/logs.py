"""
Logging setup for slotwatch consumers.
Optional daily-rotated file output next to console logging.
"""

import os
import logging
from logging.handlers import TimedRotatingFileHandler
from typing import Optional

from slotwatch.config import settings

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure root logging; adds a rotating file handler when a path is given."""
    level = (level or settings.SLOTWATCH_LOG_LEVEL).upper()
    log_file = log_file if log_file is not None else settings.SLOTWATCH_LOG_FILE

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)

    if log_file:
        setup_log_rotation(log_file)


def setup_log_rotation(log_file: str) -> None:
    """Setup daily log rotation, keep 7 days."""
    try:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)

        handler = TimedRotatingFileHandler(
            filename=log_file,
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8"
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

        root_logger = logging.getLogger()
        root_logger.addHandler(handler)

        logger.info(f"Log rotation configured for {log_file} (daily, keep 7 days)")

    except OSError as e:
        logger.error(f"Failed to setup log rotation: {e}")
