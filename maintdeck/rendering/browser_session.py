"""Headless Chromium render session (pyppeteer)."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pyppeteer import launch

logger = logging.getLogger(__name__)

# Flags for low-memory headless operation on a Raspberry Pi
CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-extensions",
    "--disable-gpu",
    "--no-first-run",
    "--hide-scrollbars",
    "--mute-audio",
]


class ChromiumSession:
    """One browser with one page sized to a single key."""

    def __init__(self, browser: Any, page: Any, width: int, height: int) -> None:
        self._browser = browser
        self._page = page
        self._width = width
        self._height = height

    @classmethod
    async def launch(
        cls,
        width: int,
        height: int,
        executable_path: Optional[str] = None,
    ) -> "ChromiumSession":
        options: dict[str, Any] = {
            "headless": True,
            "args": CHROMIUM_ARGS,
            # Signals belong to the controller, not the browser
            "handleSIGINT": False,
            "handleSIGTERM": False,
            "handleSIGHUP": False,
            "defaultViewport": {"width": width, "height": height},
        }
        if executable_path:
            options["executablePath"] = executable_path

        browser = await launch(options)
        try:
            page = await browser.newPage()
            await page.setViewport({"width": width, "height": height})
        except Exception:
            await browser.close()
            raise
        logger.info("Chromium render session started (%dx%d)", width, height)
        return cls(browser, page, width, height)

    async def render_html(self, html: str) -> bytes:
        await self._page.setContent(html)
        return await self._page.screenshot(
            {
                "type": "png",
                "clip": {"x": 0, "y": 0, "width": self._width, "height": self._height},
            }
        )

    def is_alive(self) -> bool:
        if self._page.isClosed():
            return False
        process = getattr(self._browser, "process", None)
        return process is None or process.poll() is None

    async def close(self) -> None:
        await self._browser.close()
        logger.debug("Chromium render session closed")
