"""Test doubles for the panel driver, render session and clock."""

from __future__ import annotations

import asyncio
import io
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Optional

from PIL import Image

from maintdeck.exceptions import PanelDriverError
from maintdeck.panel.driver import KeyDown
from maintdeck.rendering.images import TILE_SIZE

_CLOSED = object()


def solid_png(color: tuple[int, int, int] = (14, 146, 124), size: int = TILE_SIZE) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (size, size), color).save(buf, format="PNG")
    return buf.getvalue()


class FakeClock:
    """Mutable clock returning an aware datetime."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeRenderSession:
    """Render session returning a solid PNG; can be told to fail."""

    def __init__(self, png: Optional[bytes] = None) -> None:
        self.png = png or solid_png()
        self.alive = True
        self.closed = False
        self.fail_next = 0
        self.fail_always = False
        self.delay = 0.0
        self.rendered: list[str] = []

    async def render_html(self, html: str) -> bytes:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.rendered.append(html)
        if self.fail_always:
            raise RuntimeError("render crashed")
        if self.fail_next:
            self.fail_next -= 1
            raise RuntimeError("render crashed")
        return self.png

    def is_alive(self) -> bool:
        return self.alive and not self.closed

    async def close(self) -> None:
        self.closed = True


class FakeSessionFactory:
    """Session factory recording every session it creates."""

    def __init__(self) -> None:
        self.sessions: list[FakeRenderSession] = []
        self.fail = False
        self.configure: Any = None

    async def __call__(self, width: int, height: int) -> FakeRenderSession:
        if self.fail:
            raise RuntimeError("chromium failed to launch")
        session = FakeRenderSession()
        if self.configure is not None:
            self.configure(session)
        self.sessions.append(session)
        return session

    @property
    def current(self) -> FakeRenderSession:
        return self.sessions[-1]


class FakePanelDriver:
    """In-memory panel recording what would be shown on the hardware."""

    def __init__(self) -> None:
        self.images: dict[int, bytes] = {}
        self.writes: list[int] = []
        self.brightness: list[int] = []
        self.opened = False
        self.closed = False
        self.reset_count = 0
        self.cleared = False
        self.open_error: Optional[PanelDriverError] = None
        self.write_error: Optional[PanelDriverError] = None
        self._queue: asyncio.Queue = asyncio.Queue()

    async def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    async def set_key_image(self, index: int, buffer: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.images[index] = buffer
        self.writes.append(index)

    async def set_brightness(self, percent: int) -> None:
        self.brightness.append(percent)

    async def clear_all(self) -> None:
        self.cleared = True
        self.images.clear()

    async def reset_to_default(self) -> None:
        self.reset_count += 1

    def press(self, index: int) -> None:
        self._queue.put_nowait(KeyDown(index))

    def disconnect(self) -> None:
        self._queue.put_nowait(_CLOSED)

    async def events(self) -> AsyncIterator[KeyDown]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(_CLOSED)


