# requestweave/log_config.py
"""Logging configuration for requestweave using Loguru.

Every module in the package logs through the Loguru ``logger`` re-exported
here, so applications embedding the client only need to call
``configure_logging`` once to control level and destination.
"""

import sys

from loguru import logger

__all__ = ["configure_logging", "logger"]


def configure_logging(level: str = "INFO", sink=sys.stderr):
    """
    Configures the Loguru logger used by the client.

    Removes default handlers and adds a new one with the specified level and sink.

    Args:
        level: The minimum logging level (e.g., "DEBUG", "INFO", "WARNING").
        sink: The output sink (e.g., sys.stderr, "requests.log").
    """
    logger.remove()
    logger.add(
        sink,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        colorize=sink is sys.stderr,
        backtrace=True,
        diagnose=True,
    )
    logger.info(
        f"Loguru logger configured with level={level.upper()} writing to {sink}"
    )
