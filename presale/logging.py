"""
Logging setup.

Configures the loguru logger used across the presale package.
"""

import sys

from loguru import logger


def setup_logging(level: str = "INFO") -> None:
    """Replace the default sink with a stderr sink at ``level``."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
    )
    logger.info(f"Presale ledger logging at {level}")
