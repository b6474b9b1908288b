# ====================================================================== #
# remediation/utils/logging.py
# Loguru sink setup shared by the CLI and scripts.
# ====================================================================== #

from __future__ import annotations

import sys

from loguru import logger

from remediation.config import LOG_LEVEL

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> "
    "| <level>{level:<8}</level> | <level>{message}</level>"
)


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure Loguru **once**: drop the default sink and add ours on stderr."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
