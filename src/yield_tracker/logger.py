"""
Logging setup for the yield tracker.

The indexer CLI and the API both log through the `yield_tracker` logger, so
every `yield_tracker.*` module logger picks up the handlers configured here.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

from yield_tracker.config import TrackerSettings

PACKAGE_LOGGER = "yield_tracker"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


def setup_logger(
    logger_name: str,
    log_level: Union[str, int] = logging.INFO,
    log_file: Optional[str] = None,
    console: bool = True,
    log_format: str = DEFAULT_LOG_FORMAT,
) -> logging.Logger:
    """
    Configure and return a logger, replacing any handlers it already has.

    Args:
        logger_name (str): Logger name.
        log_level (Union[str, int]): Level name or logging constant; unknown
            names fall back to INFO.
        log_file (Optional[str]): Rotating log file. None logs to console only.
        console (bool): Attach a stderr handler.
        log_format (str): Record format.
    """
    if isinstance(log_level, str):
        log_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(log_format)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def service_log_file(settings: TrackerSettings, service_name: str) -> Optional[str]:
    """Explicit log_file wins; otherwise <log_dir>/<service_name>.log, if log_dir is set."""
    if settings.log_file:
        return settings.log_file
    if settings.log_dir:
        return os.path.join(settings.log_dir, f"{service_name}.log")
    return None


def setup_service_logger(settings: TrackerSettings, service_name: str = "indexer") -> logging.Logger:
    """Configure the package logger for one service ("indexer" or "api")."""
    return setup_logger(
        PACKAGE_LOGGER,
        log_level=settings.log_level,
        log_file=service_log_file(settings, service_name),
        console=settings.console_logs,
        log_format=settings.log_format or DEFAULT_LOG_FORMAT,
    )
