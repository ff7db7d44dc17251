"""Package logger for roomcast."""

import logging
import os
import sys

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"


def define_log_level(level: str | None = None, name: str = "roomcast") -> logging.Logger:
    """Configure and return the package logger.

    Args:
        level: Log level name, falls back to ROOMCAST_LOG_LEVEL or INFO
        name: Logger name

    Returns:
        The configured logger
    """
    level_name = (level or os.getenv("ROOMCAST_LOG_LEVEL", "INFO")).upper()
    _logger = logging.getLogger(name)
    _logger.setLevel(getattr(logging, level_name, logging.INFO))

    if not _logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        _logger.addHandler(handler)
    _logger.propagate = False
    return _logger


logger = define_log_level()
