"""Page model: which buffers go on which keys for a page."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from maintdeck.domain.device import Device
from maintdeck.exceptions import BackendUnavailable, RenderFailed
from maintdeck.panel.layout import (
    SLOTS_PER_PAGE,
    STATIC_KEYS,
    date_key,
    page_window,
    slot_for_device,
    status_key,
)
from maintdeck.panel.state import PanelSessionState
from maintdeck.rendering.images import load_icon, placeholder_tile
from maintdeck.rendering.tiles import TileRenderer

logger = logging.getLogger(__name__)

KeyBuffers = dict[int, bytes]


class PageManager:
    """Builds key buffers for pages and tracks page navigation."""

    def __init__(
        self,
        renderer: TileRenderer,
        state: PanelSessionState,
        page_count: int,
        static_icons: Optional[dict[int, list[str]]] = None,
        asset_root: Optional[Path] = None,
    ) -> None:
        if page_count < 1:
            raise ValueError(f"page_count must be >= 1, got {page_count}")
        self._renderer = renderer
        self._state = state
        self.page_count = page_count
        self._icon_paths = static_icons or {}
        self._asset_root = asset_root
        self._static: dict[int, list[bytes]] = {}
        self._placeholder = renderer.to_panel_order(placeholder_tile())

    @property
    def current_page(self) -> int:
        return self._state.current_page

    def precache_static(self) -> None:
        """Load the icon buffers of every page.

        Missing or unreadable icons are replaced with the placeholder tile.
        """
        for page in range(self.page_count):
            paths = self._icon_paths.get(page, [])
            buffers = []
            for slot in range(SLOTS_PER_PAGE):
                path = paths[slot] if slot < len(paths) else None
                buffers.append(self._load_icon(page, slot, path))
            self._static[page] = buffers
        logger.debug("Cached static icons for %d pages", self.page_count)

    def _load_icon(self, page: int, slot: int, path: Optional[str]) -> bytes:
        if not path:
            return self._placeholder
        resolved = Path(path)
        if self._asset_root is not None and not resolved.is_absolute():
            resolved = self._asset_root / resolved
        try:
            return self._renderer.to_panel_order(load_icon(resolved))
        except (OSError, ValueError) as exc:
            logger.warning("Icon %s for page %d key %d unavailable (%s); using placeholder", resolved, page, slot, exc)
            return self._placeholder

    def static_buffers_for(self, page: int) -> KeyBuffers:
        buffers = self._static.get(page)
        if buffers is None:
            buffers = [self._placeholder] * SLOTS_PER_PAGE
        return {key: buffers[slot] for slot, key in enumerate(STATIC_KEYS)}

    async def refresh_page(self, page: int, devices: Sequence[Device]) -> KeyBuffers:
        """Render status and date tiles for every slot of ``page``.

        A slot whose render fails is left out of the result. A backend outage is
        raised after all slots have settled.

        Raises:
            BackendUnavailable: If any slot hit an unavailable backend.
        """
        window = page_window(page)
        results = await asyncio.gather(
            *(self._render_slot(slot, index, devices) for slot, index in enumerate(window)),
            return_exceptions=True,
        )

        buffers: KeyBuffers = {}
        unavailable: Optional[BackendUnavailable] = None
        for index, result in zip(window, results):
            if isinstance(result, RenderFailed):
                logger.warning("Skipping device %d on page %d: %s", index, page, result)
            elif isinstance(result, BackendUnavailable):
                if unavailable is None:
                    unavailable = result
            elif isinstance(result, BaseException):
                raise result
            else:
                buffers.update(result)

        if unavailable is not None:
            raise unavailable
        return buffers

    async def refresh_single_device(self, device_index: int, devices: Sequence[Device]) -> KeyBuffers:
        """Re-render one device's keys; empty when it is not on the current page."""
        slot = slot_for_device(self._state.current_page, device_index)
        if slot is None:
            return {}
        return await self._render_slot(slot, device_index, devices)

    async def build_page(self, page: int, devices: Sequence[Device]) -> KeyBuffers:
        """All 15 buffers for a page switch."""
        buffers = self.static_buffers_for(page)
        buffers.update(await self.refresh_page(page, devices))
        return buffers

    def navigate(self, delta: int) -> bool:
        """Move one page back or forward, clamped to the valid range.

        Returns:
            True if the current page changed.

        Raises:
            ValueError: If ``delta`` is not -1 or +1.
        """
        if delta not in (-1, 1):
            raise ValueError(f"page delta must be -1 or +1, got {delta}")
        target = min(max(self._state.current_page + delta, 0), self.page_count - 1)
        if target == self._state.current_page:
            return False
        self._state.current_page = target
        return True

    async def _render_slot(self, slot: int, index: int, devices: Sequence[Device]) -> KeyBuffers:
        if index >= len(devices) or not devices[index].provisioned:
            return {status_key(slot): self._placeholder, date_key(slot): self._placeholder}
        device = devices[index]
        status = await self._renderer.render_status_tile(device, index)
        date = await self._renderer.render_date_tile(device, index)
        return {status_key(slot): status, date_key(slot): date}
