"""
Application logger

Every module logs through the shared ``logger`` instance:

    from utils.logger import logger
    logger.info("Imported 12 vouchers")
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from config import settings

LOGGER_NAME = "ecowifi"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure logging with console and optional file handlers."""
    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers when re-configured (tests, reloads)
    if log.handlers:
        return log

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    ))
    log.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
        ))
        log.addHandler(file_handler)

    return log


logger = setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
