"""
Logging configuration with rotating file handler.

This module provides a centralized logging configuration for the application.
File handlers are only attached when file logging is enabled in settings.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from mediastream.config import settings

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Set up a logger with console and (optionally) file handlers.

    Args:
        name: Logger name (usually __name__)
        level: Logging level, defaults to the configured log level

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logging_config = settings.get_logging_config()
    if level is None:
        level = getattr(logging, logging_config.level.value)

    logger.setLevel(level)
    formatter = logging.Formatter(logging_config.format, DATE_FORMAT)

    # Console handler (stdout)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if logging_config.enable_file and logging_config.log_dir:
        logs_dir = Path(logging_config.log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            logs_dir / "app.log",
            maxBytes=logging_config.max_file_size,
            backupCount=logging_config.backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)

        # Errors and above only
        error_handler = RotatingFileHandler(
            logs_dir / "error.log",
            maxBytes=logging_config.max_file_size,
            backupCount=logging_config.backup_count,
            encoding="utf-8"
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)

        logger.addHandler(file_handler)
        logger.addHandler(error_handler)

    return logger


# Create default application logger
app_logger = setup_logger("mediastream")


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (if None, returns default app logger)

    Returns:
        Logger instance
    """
    if name is None:
        return app_logger
    return setup_logger(name)
