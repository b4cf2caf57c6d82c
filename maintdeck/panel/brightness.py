"""Day/night brightness schedule with wake and temporary boost."""

from __future__ import annotations

import asyncio
import contextlib
import datetime
import logging
from typing import Optional

from maintdeck.core.time_utils import Clock, now_local
from maintdeck.domain.event_log import EventLog
from maintdeck.exceptions import PanelDriverError
from maintdeck.panel.driver import PanelDriver
from maintdeck.panel.state import PanelSessionState

logger = logging.getLogger(__name__)


def is_night_window(hour: int, start: int, end: int) -> bool:
    """True when ``hour`` falls in [start, end), wrapping past midnight if start > end."""
    if start <= end:
        return start <= hour < end
    return hour >= start or hour < end


class BrightnessScheduler:
    """Dims the panel at night and lights it for a while when it is used.

    While asleep in the night window the first key press only wakes the panel.
    Presses while awake at night extend the lit period. The reversal to night
    brightness re-checks the clock when it fires.
    """

    def __init__(
        self,
        driver: PanelDriver,
        state: PanelSessionState,
        event_log: Optional[EventLog] = None,
        clock: Clock = now_local,
        night_mode_start: int = 20,
        night_mode_end: int = 5,
        day_brightness: int = 80,
        night_brightness: int = 0,
        boost_duration: float = 30.0,
        tick_interval: float = 60.0,
    ) -> None:
        self._driver = driver
        self._state = state
        self._event_log = event_log
        self._clock = clock
        self.night_mode_start = night_mode_start
        self.night_mode_end = night_mode_end
        self.day_brightness = day_brightness
        self.night_brightness = night_brightness
        self.boost_duration = boost_duration
        self.tick_interval = tick_interval

        self._level: Optional[int] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._reversal_task: Optional[asyncio.Task] = None

    def is_night_window(self, hour: int) -> bool:
        return is_night_window(hour, self.night_mode_start, self.night_mode_end)

    def is_night(self) -> bool:
        return self.is_night_window(self._clock().hour)

    @property
    def boost_active(self) -> bool:
        return self._reversal_task is not None and not self._reversal_task.done()

    async def tick(self) -> None:
        """Apply the brightness for the current hour."""
        if self.is_night():
            if self.boost_active:
                return
            await self._apply(self.night_brightness, awake=False, reason="Night mode")
        else:
            await self._apply(self.day_brightness, awake=True, reason="Day mode")

    async def wake(self) -> bool:
        """Light the panel after a press at night.

        Returns:
            True if the panel was asleep in the night window and is now awake.
        """
        if self._state.awake or not self.is_night():
            return False
        await self._apply(self.day_brightness, awake=True, reason="Woken by key press")
        self._schedule_reversal()
        return True

    async def boost(self) -> None:
        """Keep the panel lit for ``boost_duration`` while in the night window."""
        if not self.is_night() or not self._state.awake:
            return
        await self._apply(self.day_brightness, awake=True, reason="Temporary boost")
        self._schedule_reversal()

    async def start(self) -> None:
        """Run an initial tick then keep ticking in the background."""
        await self.tick()
        self._tick_task = asyncio.create_task(self._tick_loop(), name="brightness-tick")
        if self._event_log is not None:
            self._event_log.record("Night mode scheduling enabled")

    async def stop(self) -> None:
        for task in (self._tick_task, self._reversal_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._tick_task = None
        self._reversal_task = None
        self._state.boost_deadline = None

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            try:
                await self.tick()
            except PanelDriverError as exc:
                logger.warning("Brightness tick failed: %s", exc)
                self._record(f"Error updating brightness: {exc}", "error")

    def _schedule_reversal(self) -> None:
        if self._reversal_task is not None and not self._reversal_task.done():
            self._reversal_task.cancel()
        self._state.boost_deadline = self._clock() + datetime.timedelta(seconds=self.boost_duration)
        self._reversal_task = asyncio.create_task(self._reverse_after(self.boost_duration), name="brightness-reversal")

    async def _reverse_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._state.boost_deadline = None
        # Detach first so tick() no longer treats this reversal as an active boost
        self._reversal_task = None
        try:
            if self.is_night():
                await self._apply(self.night_brightness, awake=False, reason="Night mode resumed")
            else:
                await self._apply(self.day_brightness, awake=True, reason="Day mode")
        except PanelDriverError as exc:
            logger.warning("Boost reversal failed: %s", exc)
            self._record(f"Error restoring brightness: {exc}", "error")

    async def _apply(self, level: int, awake: bool, reason: str) -> None:
        changed = level != self._level or awake != self._state.awake
        await self._driver.set_brightness(level)
        self._level = level
        self._state.awake = awake
        if changed:
            self._record(f"{reason} - brightness set to {level}%")
        else:
            logger.debug("%s - brightness kept at %d%%", reason, level)

    def _record(self, message: str, level: str = "info") -> None:
        if self._event_log is not None:
            self._event_log.record(message, level)
        else:
            logger.info("%s", message)
