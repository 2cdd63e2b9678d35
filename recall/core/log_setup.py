"""
Loguru sink configuration.

Library modules only ever call ``from loguru import logger``; the host
application decides where records go by calling ``configure_logging`` once.
"""

from __future__ import annotations

import sys

from loguru import logger

from config import Settings, get_settings

LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | <cyan>{name}</cyan> - {message}"


def configure_logging(settings: Settings | None = None) -> None:
    """
    Replace the default loguru sink with the configured ones.

    Args:
        settings: Settings to read ``log_level`` / ``log_file`` from
            (defaults to the cached application settings)
    """
    settings = settings or get_settings()

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level, format=LOG_FORMAT)

    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level,
            rotation="10 MB",
            retention="14 days",
            encoding="utf-8",
        )

    logger.debug(f"Logging configured at {settings.log_level}")
