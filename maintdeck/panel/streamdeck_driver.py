"""Elgato Stream Deck adapter for the panel driver interface.

The ``streamdeck`` library is blocking and delivers key callbacks on its own
reader thread. Every HID call runs in a worker thread and key-down callbacks are
handed to the event loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, Optional

from PIL import Image
from StreamDeck.DeviceManager import DeviceManager
from StreamDeck.ImageHelpers import PILHelper
from StreamDeck.Transport.Transport import TransportError

from maintdeck.exceptions import PanelDriverError
from maintdeck.panel.driver import KeyDown
from maintdeck.rendering.images import TILE_SIZE

logger = logging.getLogger(__name__)

_CLOSED = object()


class StreamDeckDriver:
    """Drives the first (or ``device_number``-th) visual Stream Deck found."""

    def __init__(
        self,
        device_number: int = 0,
        channel_order: str = "RGB",
        tile_size: int = TILE_SIZE,
    ) -> None:
        self._device_number = device_number
        self._raw_mode = "BGR" if channel_order.upper() == "BGR" else "RGB"
        self._tile_size = tile_size
        self._deck: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: asyncio.Queue = asyncio.Queue()

    async def open(self) -> None:
        self._loop = asyncio.get_running_loop()
        try:
            decks = await asyncio.to_thread(DeviceManager().enumerate)
        except TransportError as exc:
            raise PanelDriverError(f"could not enumerate Stream Decks: {exc}", fatal=True) from exc

        visual = [deck for deck in decks if deck.is_visual()]
        if len(visual) <= self._device_number:
            raise PanelDriverError("no Stream Deck with key images found", fatal=True)
        deck = visual[self._device_number]

        def _open() -> None:
            deck.open()
            deck.reset()

        try:
            await asyncio.to_thread(_open)
        except TransportError as exc:
            raise PanelDriverError(f"could not open Stream Deck: {exc}", fatal=True) from exc

        self._deck = deck
        deck.set_key_callback(self._on_key_change)
        logger.info(
            "Opened %s (serial %s, %d keys)",
            deck.deck_type(),
            await self._call(deck.get_serial_number),
            deck.key_count(),
        )

    def _on_key_change(self, deck: Any, key: int, state: bool) -> None:
        # Runs on the library's reader thread
        if state and self._loop is not None:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, KeyDown(int(key)))

    async def set_key_image(self, index: int, buffer: bytes) -> None:
        deck = self._require_open()
        image = Image.frombytes(
            "RGB", (self._tile_size, self._tile_size), buffer, "raw", self._raw_mode
        )
        native = PILHelper.to_native_key_format(deck, image)
        await self._call(deck.set_key_image, index, native)

    async def set_brightness(self, percent: int) -> None:
        deck = self._require_open()
        await self._call(deck.set_brightness, int(percent))

    async def clear_all(self) -> None:
        deck = self._require_open()
        blank = PILHelper.to_native_key_format(deck, PILHelper.create_key_image(deck))
        for key in range(deck.key_count()):
            await self._call(deck.set_key_image, key, blank)

    async def reset_to_default(self) -> None:
        deck = self._require_open()
        await self._call(deck.reset)

    async def events(self) -> AsyncIterator[KeyDown]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def close(self) -> None:
        deck, self._deck = self._deck, None
        self._queue.put_nowait(_CLOSED)
        if deck is None:
            return

        def _close() -> None:
            with deck:
                deck.close()

        try:
            await asyncio.to_thread(_close)
        except TransportError as exc:
            raise PanelDriverError(f"error closing Stream Deck: {exc}") from exc
        logger.debug("Stream Deck closed")

    def _require_open(self) -> Any:
        if self._deck is None:
            raise PanelDriverError("Stream Deck is not open")
        return self._deck

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        deck = self._require_open()

        def _locked() -> Any:
            with deck:
                return fn(*args)

        try:
            return await asyncio.to_thread(_locked)
        except TransportError as exc:
            fatal = not await asyncio.to_thread(_still_connected, deck)
            if fatal and self._loop is not None:
                self._queue.put_nowait(_CLOSED)
            raise PanelDriverError(f"Stream Deck call {fn.__name__} failed: {exc}", fatal=fatal) from exc


def _still_connected(deck: Any) -> bool:
    try:
        return bool(deck.connected())
    except TransportError:
        return False
