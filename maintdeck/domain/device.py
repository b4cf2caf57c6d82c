"""Device model and remaining-lifetime classification."""

from __future__ import annotations

import datetime
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from maintdeck.core.time_utils import elapsed_days, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


class ColorBand(Enum):
    """Urgency band of a device's remaining lifetime."""

    ALERT = "alert"
    WARNING = "warning"
    NOMINAL = "nominal"


@dataclass
class Device:
    """A maintained device.

    Identity is the device's position in the ordered device list, not its name.

    Attributes:
        name: Display name
        lifetime_days: Service interval in days (>= 0)
        last_reset: Time of the last maintenance reset, None if never reset
    """

    name: str
    lifetime_days: float
    last_reset: datetime.datetime | None = None

    def __post_init__(self) -> None:
        _check_lifetime(self.lifetime_days)

    @property
    def provisioned(self) -> bool:
        """False for placeholder entries with no lifetime and no reset history."""
        return not (self.lifetime_days == 0 and self.last_reset is None)

    def days_left(self, now: datetime.datetime) -> float:
        """Remaining days until maintenance, clamped to [0, lifetime_days]."""
        if self.last_reset is None:
            return float(self.lifetime_days)
        remaining = self.lifetime_days - elapsed_days(self.last_reset, now)
        return min(max(remaining, 0.0), float(self.lifetime_days))

    def reset(self, now: datetime.datetime) -> None:
        self.last_reset = now

    def set_lifetime(self, lifetime_days: float) -> None:
        _check_lifetime(lifetime_days)
        self.lifetime_days = lifetime_days

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the on-disk keys ``name``, ``lifetime`` and ``lastReset``."""
        lifetime: float | int = self.lifetime_days
        if float(lifetime).is_integer():
            lifetime = int(lifetime)
        return {
            "name": self.name,
            "lifetime": lifetime,
            "lastReset": format_timestamp(self.last_reset) if self.last_reset else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Device:
        """Build a Device from its on-disk mapping.

        Raises:
            ValueError: If a field is missing or malformed.
        """
        if not isinstance(data, dict):
            raise ValueError(f"device entry must be an object, got {type(data).__name__}")  # noqa: TRY004
        try:
            name = str(data["name"])
            lifetime = float(data.get("lifetime", 0))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"malformed device entry {data!r}: {e}") from e

        raw_reset = data.get("lastReset")
        last_reset = None
        if raw_reset:
            try:
                last_reset = parse_timestamp(str(raw_reset))
            except (ValueError, OverflowError) as e:
                raise ValueError(f"malformed lastReset {raw_reset!r}: {e}") from e
        return cls(name=name, lifetime_days=lifetime, last_reset=last_reset)


def _check_lifetime(lifetime_days: float) -> None:
    if not math.isfinite(lifetime_days) or lifetime_days < 0:
        raise ValueError(f"lifetime_days must be a finite number >= 0, got {lifetime_days}")


def classify(
    days_left: float,
    lifetime_days: float,
    policy: str = "ratio",
    warning_ratio: float = 0.4,
) -> ColorBand:
    """Map remaining days to a color band.

    Args:
        days_left: Remaining days (already clamped)
        lifetime_days: Device service interval
        policy: "ratio" - warning strictly below ``warning_ratio`` of the lifetime;
            "days" - warning at one day or less
        warning_ratio: Threshold used by the "ratio" policy
    """
    if days_left <= 0:
        return ColorBand.ALERT
    if policy == "days":
        return ColorBand.WARNING if days_left <= 1 else ColorBand.NOMINAL
    if lifetime_days > 0 and days_left / lifetime_days < warning_ratio:
        return ColorBand.WARNING
    return ColorBand.NOMINAL


DEFAULT_DEVICES: tuple[tuple[str, int], ...] = (
    ("Ore PGL1", 2),
    ("Ore PGL2", 7),
    ("Ore Met", 4),
    ("Kam Ref", 5),
    ("Vaer Trykker", 3),
    ("Enhet 6", 3),
    ("Enhet 7", 4),
    ("Enhet 8", 5),
    ("Enhet 9", 2),
    ("Enhet 10", 6),
)


def default_devices() -> list[Device]:
    """Fresh copy of the factory device list (never reset)."""
    return [Device(name=name, lifetime_days=lifetime) for name, lifetime in DEFAULT_DEVICES]
