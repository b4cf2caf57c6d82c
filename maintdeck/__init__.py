"""maintdeck - controller for a Stream Deck maintenance countdown panel.

Imports are kept light here so the package can be inspected without pulling in
the rendering or HID stacks.
"""

__version__ = "0.1.0"

from typing import Optional


_LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def _init_logging(level_name: Optional[str]) -> None:
    """Attach a colorized stderr handler to the root logger.

    ``MAINTDECK_DEBUG`` set to 1/true/yes/on wins over ``level_name``. Unknown
    level names fall back to INFO; the level can be changed again once the
    configuration is loaded.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    if os.environ.get("MAINTDECK_DEBUG", "").strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    if not root.handlers:
        console = logging.StreamHandler(stream=sys.stderr)
        console.setFormatter(
            ColoredFormatter(
                "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s",
                datefmt="%H:%M:%S",
                log_colors=_LOG_COLORS,
            )
        )
        root.addHandler(console)

    level = logging.getLevelName(level_name.upper()) if level_name else logging.INFO
    root.setLevel(level if isinstance(level, int) else logging.INFO)
    logging.getLogger(__name__).debug("Console logging at %s", logging.getLevelName(root.level))


def run(args: Optional[object] = None) -> int:
    """Start the controller and block until it shuts down.

    Args:
        args: Optional argparse namespace with --config, --port, --log-level, --no-web

    Returns:
        Process exit code.
    """
    import asyncio
    import logging
    import os

    _init_logging(getattr(args, "log_level", None) or os.environ.get("MAINTDECK_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from maintdeck.app import MaintDeckApp
    from maintdeck.config_loader import load_config
    from maintdeck.logging_config import configure_logging

    config = load_config(getattr(args, "config", None))

    port = getattr(args, "port", None)
    if port is not None:
        try:
            config.server_port = int(port)
            logger.debug("Applied command line port override: %d", config.server_port)
        except (ValueError, TypeError) as e:
            logger.warning("Invalid port value from command line '%s': %s", port, e)
    if getattr(args, "no_web", False):
        config.server_enabled = False
    cli_level = getattr(args, "log_level", None)
    if cli_level:
        config.log_level = str(cli_level).upper()

    configure_logging(config.log_level)

    app = MaintDeckApp(config)
    try:
        return asyncio.run(app.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130  # 128 + SIGINT
