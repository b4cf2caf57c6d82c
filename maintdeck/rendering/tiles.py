"""Tile composition: device state to key buffers."""

from __future__ import annotations

import logging
import math

from maintdeck.core.time_utils import Clock, now_local
from maintdeck.domain.device import ColorBand, Device, classify
from maintdeck.exceptions import BackendUnavailable, RenderFailed
from maintdeck.rendering.backend import RenderBackend, TileSpec
from maintdeck.rendering.images import buffer_length, swap_red_blue

logger = logging.getLogger(__name__)

BAND_COLORS = {
    ColorBand.NOMINAL: "#0E927C",
    ColorBand.WARNING: "#FFB37A",
    ColorBand.ALERT: "#FF7461",
}
DATE_BACKGROUND = "#0A2343"
TEXT_LIGHT = "#FFFFFF"
TEXT_DARK = "#000000"

STATUS_VALUE_SIZE = 28
DATE_VALUE_SIZE = 25
NEVER_RESET_TEXT = "-"


def status_text(days_left: float, singular: str = "dag", plural: str = "dager") -> tuple[str, str]:
    """Rounded-up day count and its unit label."""
    value = math.ceil(days_left)
    return str(value), singular if value == 1 else plural


class TileRenderer:
    """Builds status and date tiles for devices through the render backend."""

    def __init__(
        self,
        backend: RenderBackend,
        clock: Clock = now_local,
        warning_policy: str = "ratio",
        warning_ratio: float = 0.4,
        unit_singular: str = "dag",
        unit_plural: str = "dager",
        channel_order: str = "RGB",
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._warning_policy = warning_policy
        self._warning_ratio = warning_ratio
        self._unit_singular = unit_singular
        self._unit_plural = unit_plural
        self._channel_order = channel_order.upper()

    def status_spec(self, device: Device) -> TileSpec:
        days_left = device.days_left(self._clock())
        band = classify(days_left, device.lifetime_days, self._warning_policy, self._warning_ratio)
        value, unit = status_text(days_left, self._unit_singular, self._unit_plural)
        return TileSpec(
            background_color=BAND_COLORS[band],
            text_color=TEXT_DARK if band is ColorBand.WARNING else TEXT_LIGHT,
            primary_text=value,
            secondary_text=unit,
            primary_size=STATUS_VALUE_SIZE,
        )

    def date_spec(self, device: Device) -> TileSpec:
        if device.last_reset is None:
            text = NEVER_RESET_TEXT
        else:
            local = device.last_reset.astimezone()
            text = local.strftime("%d.%m\n%H:%M")
        return TileSpec(
            background_color=DATE_BACKGROUND,
            text_color=TEXT_LIGHT,
            primary_text=text,
            primary_size=DATE_VALUE_SIZE,
        )

    async def render_status_tile(self, device: Device, device_index: int | None = None) -> bytes:
        return await self._render(self.status_spec(device), device, device_index)

    async def render_date_tile(self, device: Device, device_index: int | None = None) -> bytes:
        return await self._render(self.date_spec(device), device, device_index)

    def to_panel_order(self, buffer: bytes) -> bytes:
        """Convert a backend RGB buffer to the byte order the panel expects.

        Raises:
            ValueError: If the buffer is not exactly one key in size.
        """
        expected = buffer_length(self._backend.width, self._backend.height)
        if len(buffer) != expected:
            raise ValueError(f"tile buffer is {len(buffer)} bytes, expected {expected}")
        if self._channel_order == "BGR":
            return swap_red_blue(buffer)
        return bytes(buffer)

    async def _render(self, spec: TileSpec, device: Device, device_index: int | None) -> bytes:
        try:
            buffer = await self._backend.render_tile(spec)
        except BackendUnavailable:
            raise
        except RenderFailed as exc:
            raise RenderFailed(str(exc), device_index=device_index, device_name=device.name) from exc
        return self.to_panel_order(buffer)
