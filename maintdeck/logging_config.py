"""
Central logging configuration for maintdeck.

Suppresses verbose debug output from the rendering, HID and web stacks while
keeping the controller's own diagnostics.
"""

import logging
import os
from typing import Optional

# Third-party loggers that flood the console at DEBUG/INFO
NOISY_LOGGERS: dict[str, int] = {
    "pyppeteer": logging.WARNING,  # CDP traffic
    "pyppeteer.connection": logging.WARNING,
    "websockets": logging.WARNING,  # pyppeteer transport
    "aiohttp.access": logging.WARNING,  # HTTP access logs
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "PIL": logging.WARNING,  # plugin discovery
    "asyncio": logging.WARNING,
}


def configure_logging(level_name: Optional[str] = None, force_debug: Optional[bool] = None) -> int:
    """Apply logger levels for maintdeck and its dependencies.

    Args:
        level_name: Root log level name (DEBUG, INFO, WARNING, ERROR)
        force_debug: Override debug detection (None to use MAINTDECK_DEBUG)

    Environment Variables:
        MAINTDECK_DEBUG: '1', 'true', 'yes' forces debug logging
        MAINTDECK_LOG_LEVEL: overrides level_name

    Returns:
        The root level that was applied.
    """
    env_debug = os.getenv("MAINTDECK_DEBUG", "").lower() in ("1", "true", "yes", "on")
    env_level = os.getenv("MAINTDECK_LOG_LEVEL", "").upper()

    final_debug = force_debug if force_debug is not None else env_debug

    root_level = logging.INFO
    if level_name and level_name.upper() in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, level_name.upper())
    if env_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_level)
    if final_debug:
        root_level = logging.DEBUG

    # Don't use basicConfig(force=True); keep the colorized handler from __init__
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s")
        )
        root_logger.addHandler(handler)

    for logger_name, level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)

    logging.getLogger("maintdeck").setLevel(logging.DEBUG if final_debug else root_level)

    if final_debug:
        root_logger.info("Debug logging enabled; third-party debug logs suppressed")
    return root_level
