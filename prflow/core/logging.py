"""
Logging configuration (loguru).
"""

import sys

from loguru import logger

from .config import settings


def setup_logging():
    """
    Configure the application logger.

    Console output always; a rotating file sink is added when LOG_FILE is set.

    Returns:
        logger: Configured loguru logger
    """
    logger.remove()

    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level> | {extra}",
        level=settings.log_level,
        colorize=True
    )

    if settings.log_file:
        logger.add(
            settings.log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message} | {extra}",
            level=settings.log_level,
            rotation="10 MB",
            retention="30 days",
            compression="zip"
        )

    return logger
