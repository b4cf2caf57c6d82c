"""Command-line entry for maintdeck."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

from . import run


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the maintdeck CLI."""
    parser = argparse.ArgumentParser(
        prog="maintdeck",
        description="Maintenance countdown controller for Stream Deck panels",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m maintdeck                             # Use ./maintdeck.yaml and defaults
  python -m maintdeck --config /etc/maintdeck.yaml
  python -m maintdeck --port 8080 --log-level DEBUG
        """,
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="YAML or JSON configuration file (default: ./maintdeck.yaml)",
    )
    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port for the HTTP endpoint (default: 3000, or MAINTDECK_WEB_PORT)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Console log level",
    )
    parser.add_argument(
        "--no-web",
        action="store_true",
        help="Do not start the HTTP endpoint",
    )
    return parser


def main() -> NoReturn:
    """Run the maintdeck CLI."""
    args = _create_parser().parse_args()
    sys.exit(run(args))


if __name__ == "__main__":
    main()
