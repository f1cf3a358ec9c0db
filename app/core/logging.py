import sys

from loguru import logger

from app.core.config import get_settings


def configure_logging() -> None:
    """Replace loguru's default sink with one honoring LOG_LEVEL."""
    logger.remove()
    logger.add(sys.stderr, level=get_settings().LOG_LEVEL.upper())
