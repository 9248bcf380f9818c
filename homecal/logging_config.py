"""
Central logging configuration for homecal.

Holds noisy third-party loggers at WARNING and sets homecal's own loggers
to DEBUG or INFO. Debug mode can be forced from the environment for
troubleshooting.
"""

import logging
import os
from typing import Optional

_NOISY_LOGGERS = ("aiohttp.access", "aiohttp.server", "aiohttp.web_log", "asyncio")

_HOMECAL_LOGGERS = (
    "homecal",
    "homecal.api",
    "homecal.calendar",
    "homecal.core",
    "homecal.domain",
    "homecal.feed",
    "homecal.storage",
)


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for homecal.

    Args:
        debug_mode: Whether to enable debug logging for homecal modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        HOMECAL_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        HOMECAL_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("HOMECAL_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("HOMECAL_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Keep any handler installed by homecal._init_logging
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s"))
        root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    homecal_level = logging.DEBUG if final_debug else logging.INFO
    for name in _HOMECAL_LOGGERS:
        logging.getLogger(name).setLevel(homecal_level)

    if final_debug:
        root_logger.info("Debug logging enabled for homecal modules; third-party debug logs suppressed")
    else:
        root_logger.info("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for name in ("homecal", *_NOISY_LOGGERS):
        status[name] = logging.getLevelName(logging.getLogger(name).level)
    return status
