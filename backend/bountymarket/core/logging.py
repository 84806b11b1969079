"""Log sink configuration shared by the API and the admin CLI."""

from __future__ import annotations

import sys

from loguru import logger

from .config import Settings

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(settings: Settings) -> None:
    """Replace loguru's default sink with one honouring the configured level."""

    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format=_FORMAT,
        backtrace=settings.debug,
        diagnose=settings.debug,
    )
    logger.debug("Logging configured at {} ({})", settings.log_level, settings.environment)
