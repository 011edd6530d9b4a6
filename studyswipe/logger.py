"""
studyswipe/logger.py
────────────────────
Loguru-based logger configured once and imported across the project.
"""

import sys

from loguru import logger

from studyswipe.settings import get_settings


def setup_logger() -> None:
    settings = get_settings()

    logger.remove()  # remove default stderr handler

    # Console: colourised, human-readable
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    # File: one JSON record per line
    if settings.log_file is not None:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(settings.log_file),
            level="DEBUG",
            rotation="10 MB",
            retention="14 days",
            serialize=True,
        )


setup_logger()

__all__ = ["logger", "setup_logger"]
