"""Logging setup: loguru sinks, with stdlib logging routed into them."""

import logging
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import get_config

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

# Stdlib loggers forwarded to loguru (the storage layer logs through `logging`)
FORWARDED_LOGGERS = ("src.storage", "uvicorn", "uvicorn.error", "uvicorn.access")


class LoguruHandler(logging.Handler):
    """Pass stdlib log records on to loguru."""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None):
    """Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file; an empty string disables the file sink
    """
    config = get_config()

    if log_level is None:
        log_level = config.logging.level
    if log_file is None:
        log_file = config.logging.file

    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format=FILE_FORMAT,
            level=log_level,
            rotation="10 MB",
            retention="30 days",
            compression="zip",
        )

    handler = LoguruHandler()
    for name in FORWARDED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [handler]
        std_logger.setLevel(log_level.upper())
        std_logger.propagate = False

    logger.info(f"Logging initialized at {log_level} level")
