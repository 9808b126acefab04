"""
Loguru configuration.

One stdout sink so Gunicorn / the container runtime captures everything.
Call `configure_logging()` once at process start; repeated calls replace the
sink instead of stacking duplicates.
"""
import sys

from loguru import logger

from personalization.core.config import settings

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str | None = None) -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        level=(level or settings.LOG_LEVEL).upper(),
        format=_FORMAT,
        backtrace=False,
        diagnose=settings.APP_ENV != "production",
    )
