"""Environment-variable configuration overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def parse_env_file(path: Path) -> dict[str, str]:
    """Read ``KEY=value`` lines from a .env file.

    Blank lines, ``#`` comments and lines without ``=`` are skipped, and one
    layer of surrounding quotes is stripped from values. A missing or
    unreadable file yields an empty mapping.
    """
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return {}
    except OSError:
        logger.warning("Could not read %s; ignoring it", path, exc_info=True)
        return {}

    values: dict[str, str] = {}
    for line in (raw.strip() for raw in lines):
        if line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key] = value
    return values


# env var -> (config key, converter)
_ENV_KEYS: dict[str, tuple[str, type]] = {
    "MAINTDECK_DATA_PATH": ("data_path", str),
    "MAINTDECK_LOG_PATH": ("log_path", str),
    "MAINTDECK_WEB_HOST": ("server_bind", str),
    "MAINTDECK_WEB_PORT": ("server_port", int),
    "MAINTDECK_LOG_LEVEL": ("log_level", str),
    "MAINTDECK_PAGE_COUNT": ("page_count", int),
    "MAINTDECK_CHROMIUM_PATH": ("chromium_path", str),
}


class ConfigManager:
    """Builds configuration overrides from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file into the environment without overriding existing values.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        parsed = parse_env_file(self.env_file_path)

        set_keys = []
        for key, val in parsed.items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build a configuration dictionary from MAINTDECK_* variables.

        Values that fail conversion are logged and ignored.
        """
        cfg: dict[str, Any] = {}
        for env_key, (cfg_key, convert) in _ENV_KEYS.items():
            raw = os.environ.get(env_key)
            if not raw:
                continue
            try:
                cfg[cfg_key] = convert(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_key, raw)
        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment."""
        self.load_env_file()
        return self.build_config_from_env()
