"""
Centralized logging configuration for the client.
"""

import logging
import sys

from mocktest.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# The API client logs its own requests through httpx event hooks
NOISY_LIBRARIES = ("httpx", "httpcore")


def _level() -> int:
    return getattr(logging, settings.log_level.upper(), logging.INFO)


def setup_logger(name: str) -> logging.Logger:
    """
    Configure and return a logger instance.

    Every module gets its own stdout handler on first use; third-party HTTP
    loggers are held at WARNING unless debugging.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = _level()
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)

    for library in NOISY_LIBRARIES:
        logging.getLogger(library).setLevel(max(level, logging.WARNING))

    return logger
