"""
Logging setup module
"""
import logging
import sys
from typing import Optional
from powerslides.config import settings


def setup_logger(
    name: str,
    level: Optional[str] = None,
    format: Optional[str] = None
) -> logging.Logger:
    """
    Configure and return a logger

    Args:
        name: logger name
        level: log level (default: settings.LOG_LEVEL)
        format: log format (default: settings.LOG_FORMAT)

    Returns:
        configured logger instance
    """
    level = (level or settings.LOG_LEVEL).upper()
    format = format or settings.LOG_FORMAT

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level))

    # Only attach a handler once per logger
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(getattr(logging, level))

        formatter = logging.Formatter(format)
        handler.setFormatter(formatter)

        logger.addHandler(handler)

    return logger
