"""Centralized logging configuration (loguru)."""

import sys

from loguru import logger

from taquilla.core.config import settings

log_format = " | ".join(
    (
        "<lk>{time:YYYY-MM-DD HH:mm:ss.SSS}</>",
        "<lvl>{level:<8}</>",
        "<c>{name}::{function}:{line}</>",
        "{message}",
    )
)

_configured = False


def setup_logging() -> None:
    """Install console (and optional rotating file) sinks. Safe to call more than once."""
    global _configured
    if _configured:
        return
    logger.remove()  # drop loguru's default handler so lines are not duplicated
    logger.add(sys.stdout, format=log_format, level=settings.LOG_LEVEL)
    if settings.LOG_DIR:
        logger.add(
            f"{settings.LOG_DIR}/{{time:YYYY-MM-DD}}.log",
            format=log_format,
            level=settings.LOG_LEVEL,
            rotation="1 day",
            retention="30 days",
            compression="zip",
            enqueue=True,
        )
    _configured = True
