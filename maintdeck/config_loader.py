"""maintdeck.config_loader

Config loader for the maintenance panel controller.

- Prefers YAML (PyYAML); JSON files are accepted too since JSON is valid YAML.
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override and layers MAINTDECK_* environment overrides on top.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "maintdeck.yaml"

WARNING_POLICIES = ("ratio", "days")
CHANNEL_ORDERS = ("RGB", "BGR")


def _default_static_icons() -> dict[int, list[str]]:
    return {
        0: [f"./png/Knapp-{i}.png" for i in range(5)],
        1: [
            "./png/mik-pgl1.png",
            "./png/mik-pgl2.png",
            "./png/mik-met.png",
            "./png/mork-blaa.png",
            "./png/mork-blaa.png",
        ],
    }


def _default_celebration_frames() -> list[str]:
    return [f"./assets/hug-emoji_{i}.png" for i in range(1, 14)]


@dataclass
class Config:
    """Typed configuration for the panel controller.

    Fields:
        data_path: JSON file holding the device list
        log_path: JSON file holding the operator event log
        max_log_entries: event log capacity (newest entries kept)
        page_count: number of device pages (1..20)
        static_icons: page -> five icon image paths for keys 0-4
        noop_keys: page -> keys that are decorative on that page
        celebration_frames: image paths played on a status key after a reset
        frame_interval_ms: delay between animation frames
        night_mode_start: first hour of the night window (inclusive)
        night_mode_end: hour the night window ends (exclusive)
        day_brightness / night_brightness: panel brightness percentages
        boost_duration_seconds: how long a night-time boost lasts
        brightness_tick_seconds: scheduler tick interval
        refresh_check_seconds: resolution of the half-hour refresh timer
        warning_policy: "ratio" (below warning_ratio of lifetime) or "days" (<= 1 day)
        warning_ratio: lifetime fraction below which a device is in warning
        unit_singular / unit_plural: day unit labels on status tiles
        channel_order: byte order the panel expects ("RGB" or "BGR")
        render_timeout_seconds: upper bound for a single tile render
        chromium_path: optional Chromium executable for the render session
        server_enabled: start the HTTP configuration endpoint
        server_bind / server_port: HTTP endpoint address
        log_level: logging level name
    """

    data_path: str = "data.json"
    log_path: str = "logs.json"
    max_log_entries: int = 100
    page_count: int = 2
    static_icons: dict[int, list[str]] = field(default_factory=_default_static_icons)
    noop_keys: dict[int, list[int]] = field(default_factory=dict)
    celebration_frames: list[str] = field(default_factory=_default_celebration_frames)
    frame_interval_ms: int = 50
    night_mode_start: int = 20
    night_mode_end: int = 5
    day_brightness: int = 80
    night_brightness: int = 0
    boost_duration_seconds: float = 30.0
    brightness_tick_seconds: float = 60.0
    refresh_check_seconds: float = 30.0
    warning_policy: str = "ratio"
    warning_ratio: float = 0.4
    unit_singular: str = "dag"
    unit_plural: str = "dager"
    channel_order: str = "RGB"
    render_timeout_seconds: float = 10.0
    chromium_path: str | None = None
    server_enabled: bool = True
    server_bind: str = "0.0.0.0"  # nosec: B104 - panel is configured from the local network
    server_port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric values are coerced, hours and brightness levels are clamped to
        their valid ranges, and unknown enum-like values fall back to the
        default. Every coercion is logged as a warning.
        """
        if data is None:
            data = {}
        defaults = cls()

        def _coerce_int(key: str, default: int, low: int, high: int) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < low or value > high:
                clamped = min(max(value, low), high)
                logger.warning("Config %s=%d outside %d..%d; coercing to %d", key, value, low, high, clamped)
                return clamped
            return value

        def _coerce_float(key: str, default: float, low: float) -> float:
            raw = data.get(key, default)
            try:
                value = float(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not a number; using default %s", key, raw, default)
                return default
            if value < low:
                logger.warning("Config %s=%s below minimum; coercing to %s", key, value, low)
                return low
            return value

        def _coerce_choice(key: str, default: str, choices: tuple[str, ...], upper: bool = False) -> str:
            raw = data.get(key, default)
            value = str(raw).upper() if upper else str(raw).lower()
            if value not in choices:
                logger.warning("Config %s=%r not one of %s; using default %s", key, raw, choices, default)
                return default
            return value

        page_count = _coerce_int("page_count", defaults.page_count, 1, 20)

        static_icons = _parse_page_mapping(data.get("static_icons"), defaults.static_icons, str)
        noop_keys = _parse_page_mapping(data.get("noop_keys"), {}, int)

        frames_raw = data.get("celebration_frames", defaults.celebration_frames)
        if frames_raw is None:
            frames_raw = []
        if not isinstance(frames_raw, (list, tuple)):
            logger.warning("Config `celebration_frames` is not a list; coercing to single-item list")
            frames_raw = [frames_raw]
        celebration_frames = [str(f) for f in frames_raw]

        chromium_path = data.get("chromium_path")
        if chromium_path is not None:
            chromium_path = str(chromium_path)

        server_bind = data.get("server_bind", defaults.server_bind)
        server_bind = str(server_bind) if server_bind is not None else defaults.server_bind

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"

        warning_ratio = _coerce_float("warning_ratio", defaults.warning_ratio, 0.0)
        if warning_ratio > 1.0:
            logger.warning("warning_ratio %s above 1.0; coercing to 1.0", warning_ratio)
            warning_ratio = 1.0

        return cls(
            data_path=str(data.get("data_path", defaults.data_path)),
            log_path=str(data.get("log_path", defaults.log_path)),
            max_log_entries=_coerce_int("max_log_entries", defaults.max_log_entries, 1, 10000),
            page_count=page_count,
            static_icons=static_icons,
            noop_keys=noop_keys,
            celebration_frames=celebration_frames,
            frame_interval_ms=_coerce_int("frame_interval_ms", defaults.frame_interval_ms, 1, 5000),
            night_mode_start=_coerce_int("night_mode_start", defaults.night_mode_start, 0, 23),
            night_mode_end=_coerce_int("night_mode_end", defaults.night_mode_end, 0, 23),
            day_brightness=_coerce_int("day_brightness", defaults.day_brightness, 0, 100),
            night_brightness=_coerce_int("night_brightness", defaults.night_brightness, 0, 100),
            boost_duration_seconds=_coerce_float(
                "boost_duration_seconds", defaults.boost_duration_seconds, 0.0
            ),
            brightness_tick_seconds=_coerce_float(
                "brightness_tick_seconds", defaults.brightness_tick_seconds, 1.0
            ),
            refresh_check_seconds=_coerce_float(
                "refresh_check_seconds", defaults.refresh_check_seconds, 1.0
            ),
            warning_policy=_coerce_choice("warning_policy", defaults.warning_policy, WARNING_POLICIES),
            warning_ratio=warning_ratio,
            unit_singular=str(data.get("unit_singular", defaults.unit_singular)),
            unit_plural=str(data.get("unit_plural", defaults.unit_plural)),
            channel_order=_coerce_choice(
                "channel_order", defaults.channel_order, CHANNEL_ORDERS, upper=True
            ),
            render_timeout_seconds=_coerce_float(
                "render_timeout_seconds", defaults.render_timeout_seconds, 0.1
            ),
            chromium_path=chromium_path,
            server_enabled=bool(data.get("server_enabled", defaults.server_enabled)),
            server_bind=server_bind,
            server_port=_coerce_int("server_port", defaults.server_port, 1, 65535),
            log_level=log_level,
        )


def _parse_page_mapping(raw: Any, default: dict[int, list[Any]], item_type: type) -> dict[int, list[Any]]:
    """Normalize a ``page -> list`` mapping whose keys may arrive as strings."""
    if raw is None:
        return {page: list(items) for page, items in default.items()}
    if not isinstance(raw, dict):
        logger.warning("Config page mapping %r is not a mapping; using defaults", raw)
        return {page: list(items) for page, items in default.items()}

    result: dict[int, list[Any]] = {}
    for key, items in raw.items():
        try:
            page = int(key)
            result[page] = [item_type(item) for item in (items or [])]
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed page mapping entry %r: %r", key, items)
    return result


def _load_yaml(path: Path) -> Any:
    """Load a mapping from a YAML (or JSON) file."""
    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    # safe_load can return None for empty files; normalize to empty dict
    if loaded is None:
        return {}
    return loaded


def load_config(path: str | None = None, apply_env: bool = True) -> Config:
    """Load configuration from a YAML/JSON file and return a Config instance.

    Args:
        path: Optional path to the config file. Defaults to ./maintdeck.yaml.
        apply_env: Layer MAINTDECK_* environment variables (and .env) on top.

    Returns:
        Config dataclass instance with values from file (or defaults).

    Raises:
        ValueError: If the file exists but its top level is not a mapping.
    """
    p = Path(path) if path else Path.cwd() / DEFAULT_CONFIG_FILENAME
    logger.debug("Attempting to load config from %s", p)

    raw: dict[str, Any] = {}
    if p.exists():
        loaded = _load_yaml(p)
        if not isinstance(loaded, dict):
            logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, loaded)
            raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
        raw = loaded
        logger.info("Loaded configuration from %s", p)
    else:
        logger.info("Config file %s not found; using defaults", p)

    if apply_env:
        from maintdeck.core.config_manager import ConfigManager  # noqa: PLC0415

        overrides = ConfigManager().load_full_config()
        if overrides:
            logger.debug("Applying environment overrides: %s", sorted(overrides))
        raw.update(overrides)

    cfg = Config.from_dict(raw)
    logger.debug("Configuration values: %s", cfg)
    return cfg
