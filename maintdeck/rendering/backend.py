"""Render backend: owns the browser session and turns tile specs into RGB buffers.

A single session is shared by every render and guarded by one lock, so at most
one render is in flight. A failed render recreates the session once and retries;
the second failure is reported as :class:`RenderFailed`. A session that cannot
be (re)created is reported as :class:`BackendUnavailable`.
"""

from __future__ import annotations

import asyncio
import contextlib
import html
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from maintdeck.exceptions import BackendUnavailable, RenderFailed
from maintdeck.rendering.images import TILE_SIZE, png_to_rgb

logger = logging.getLogger(__name__)

DEFAULT_RENDER_TIMEOUT = 10.0

FONT_STACK = (
    '-apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Oxygen-Sans, Ubuntu, '
    'Cantarell, "Helvetica Neue", sans-serif'
)


@dataclass(frozen=True)
class TileSpec:
    """Visual description of one key tile.

    ``primary_text`` may contain newlines; each becomes a line break.
    """

    background_color: str
    text_color: str
    primary_text: str
    secondary_text: str = ""
    font_weight: str = "bold"
    primary_size: int = 28
    secondary_size: int = 16


class RenderSession(Protocol):
    async def render_html(self, html: str) -> bytes: ...

    def is_alive(self) -> bool: ...

    async def close(self) -> None: ...


SessionFactory = Callable[[int, int], Awaitable[RenderSession]]


def tile_html(spec: TileSpec, width: int = TILE_SIZE, height: int = TILE_SIZE) -> str:
    """Build the HTML document for a tile."""
    primary = "<br>".join(html.escape(line) for line in spec.primary_text.split("\n"))
    secondary = ""
    if spec.secondary_text:
        secondary = f'<div class="subtext">{html.escape(spec.secondary_text)}</div>'
    return f"""<!DOCTYPE html>
<html>
<head>
<style>
* {{ margin: 0; padding: 0; box-sizing: border-box; }}
body {{
    width: {width}px;
    height: {height}px;
    background: {spec.background_color};
    display: flex;
    justify-content: center;
    align-items: center;
    font-family: {FONT_STACK};
    color: {spec.text_color};
    text-align: center;
    overflow: hidden;
}}
.container {{ display: flex; flex-direction: column; align-items: center; justify-content: center; }}
.value {{ font-size: {spec.primary_size}px; font-weight: {spec.font_weight}; line-height: 1; }}
.subtext {{ font-size: {spec.secondary_size}px; font-weight: {spec.font_weight}; margin-top: 2px; }}
</style>
</head>
<body>
<div class="container">
<div class="value">{primary}</div>
{secondary}
</div>
</body>
</html>
"""


async def _launch_chromium(width: int, height: int, executable_path: Optional[str]) -> RenderSession:
    # Imported lazily so the controller can be inspected without pyppeteer loaded
    from maintdeck.rendering.browser_session import ChromiumSession  # noqa: PLC0415

    return await ChromiumSession.launch(width, height, executable_path=executable_path)


class RenderBackend:
    """Owns the render session and serializes every render through one lock."""

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        width: int = TILE_SIZE,
        height: int = TILE_SIZE,
        timeout: float = DEFAULT_RENDER_TIMEOUT,
        chromium_path: Optional[str] = None,
    ) -> None:
        if session_factory is None:

            async def session_factory(w: int, h: int) -> RenderSession:
                return await _launch_chromium(w, h, chromium_path)

        self._factory = session_factory
        self.width = width
        self.height = height
        self._timeout = timeout
        self._session: Optional[RenderSession] = None
        self._lock = asyncio.Lock()

    @property
    def has_session(self) -> bool:
        return self._session is not None

    async def acquire(self) -> None:
        """Open the render session if none is open.

        Raises:
            BackendUnavailable: If the session could not be created.
        """
        async with self._lock:
            if self._session is None:
                await self._open_locked()

    async def ensure_healthy(self) -> None:
        """Recreate the session when it is missing or dead.

        Raises:
            BackendUnavailable: If the session could not be recreated.
        """
        async with self._lock:
            await self._ensure_healthy_locked()

    async def render_tile(self, spec: TileSpec) -> bytes:
        """Render a tile to ``width * height * 3`` bytes of RGB.

        Raises:
            RenderFailed: If the render failed twice.
            BackendUnavailable: If the session could not be recreated.
        """
        return await self.render_html(tile_html(spec, self.width, self.height))

    async def render_html(self, document: str) -> bytes:
        """Render a document; the session is recreated at most once per call."""
        async with self._lock:
            recreated = await self._ensure_healthy_locked()
            try:
                return await self._render_once(document)
            except Exception as exc:
                if recreated:
                    raise RenderFailed(f"render failed on a recreated session: {exc}") from exc
                logger.warning("Render failed (%s); recreating render session", exc)

            await self._recreate_locked()
            try:
                return await self._render_once(document)
            except Exception as exc:
                raise RenderFailed(f"render failed after session recreate: {exc}") from exc

    async def dispose(self) -> None:
        """Close the session. Never raises."""
        async with self._lock:
            await self._close_locked()

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[RenderBackend]:
        """Scoped acquisition: the session is disposed on exit."""
        await self.acquire()
        try:
            yield self
        finally:
            await self.dispose()

    async def _render_once(self, document: str) -> bytes:
        if self._session is None:
            raise BackendUnavailable("render session is not open")
        png = await asyncio.wait_for(self._session.render_html(document), timeout=self._timeout)
        return png_to_rgb(png, self.width, self.height)

    async def _ensure_healthy_locked(self) -> bool:
        """Open or replace the session as needed; True if a dead one was replaced."""
        if self._session is None:
            await self._open_locked()
            return False
        try:
            alive = self._session.is_alive()
        except Exception:
            logger.debug("Render session health check raised", exc_info=True)
            alive = False
        if not alive:
            logger.warning("Render session is dead; recreating")
            await self._recreate_locked()
            return True
        return False

    async def _open_locked(self) -> None:
        try:
            self._session = await asyncio.wait_for(
                self._factory(self.width, self.height), timeout=self._timeout
            )
        except Exception as exc:
            self._session = None
            raise BackendUnavailable(f"could not start render session: {exc}") from exc
        logger.debug("Render session opened")

    async def _recreate_locked(self) -> None:
        await self._close_locked()
        await self._open_locked()

    async def _close_locked(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            await asyncio.wait_for(session.close(), timeout=self._timeout)
        except Exception:
            logger.warning("Error closing render session (ignored)", exc_info=True)
