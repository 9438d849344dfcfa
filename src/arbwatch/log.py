"""Logging setup for the dashboard core."""

import sys
from loguru import logger

from .config import LoggingConfig

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(config: LoggingConfig) -> None:
    """Replace loguru's default sink with the configured console and file sinks."""
    logger.remove()
    logger.add(sys.stderr, level=config.level.upper(), format=CONSOLE_FORMAT)
    if config.file:
        logger.add(config.file, level=config.file_level.upper(), format=FILE_FORMAT)
