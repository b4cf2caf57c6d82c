"""Session controller: the panel's lifecycle and key press dispatch.

The controller owns the panel driver and the render backend. Each key press is
handled as an independent task; presses for different devices run concurrently
while a second press for a device that is still being reset is skipped.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import datetime
import logging
from enum import Enum
from typing import Any, Coroutine, Iterator, Optional, Sequence

from maintdeck.core.time_utils import Clock, now_local
from maintdeck.domain.device import Device, default_devices
from maintdeck.domain.device_store import DeviceStore
from maintdeck.domain.event_log import EventLog
from maintdeck.exceptions import (
    BackendUnavailable,
    DeviceBusy,
    PanelDriverError,
    RenderFailed,
    StoreUnavailable,
)
from maintdeck.panel.animation import AnimationPlayer
from maintdeck.panel.brightness import BrightnessScheduler
from maintdeck.panel.driver import PanelDriver
from maintdeck.panel.layout import KeyAction, KeyDispatch, resolve_key, status_key
from maintdeck.panel.pages import KeyBuffers, PageManager
from maintdeck.panel.state import PanelSessionState
from maintdeck.rendering.backend import RenderBackend

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_CHECK_INTERVAL = 30.0


class SessionStatus(Enum):
    INITIALIZING = "initializing"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class ExclusionSet:
    """Device indices with a reset in progress."""

    def __init__(self) -> None:
        self._held: set[int] = set()

    def __contains__(self, index: object) -> bool:
        return index in self._held

    def __len__(self) -> int:
        return len(self._held)

    @contextlib.contextmanager
    def hold(self, index: int) -> Iterator[None]:
        """Claim ``index`` for the duration of the block.

        Raises:
            DeviceBusy: If the index is already claimed.
        """
        if index in self._held:
            raise DeviceBusy(index)
        self._held.add(index)
        try:
            yield
        finally:
            self._held.discard(index)


class SessionController:
    """Coordinates the panel, the device list and the render pipeline."""

    def __init__(
        self,
        driver: PanelDriver,
        backend: RenderBackend,
        pages: PageManager,
        scheduler: BrightnessScheduler,
        animations: AnimationPlayer,
        store: DeviceStore,
        event_log: EventLog,
        state: PanelSessionState,
        clock: Clock = now_local,
        noop_keys: Optional[dict[int, list[int]]] = None,
        refresh_check_interval: float = DEFAULT_REFRESH_CHECK_INTERVAL,
    ) -> None:
        self._driver = driver
        self._backend = backend
        self._pages = pages
        self._scheduler = scheduler
        self._animations = animations
        self._store = store
        self._log = event_log
        self.state = state
        self._clock = clock
        self._noop_keys = noop_keys or {}
        self._refresh_check_interval = refresh_check_interval

        self.status = SessionStatus.INITIALIZING
        self.devices: list[Device] = []
        self.exclusion = ExclusionSet()

        self._tasks: set[asyncio.Task] = set()
        self._refresh_task: Optional[asyncio.Task] = None
        self._last_refresh_slot: Optional[tuple] = None
        self._shutdown_requested = asyncio.Event()
        self._stopped = asyncio.Event()

    # Lifecycle

    async def start(self) -> None:
        """Bring the panel up and show the first page.

        Raises:
            PanelDriverError: If the panel could not be opened.
        """
        logger.info("Starting maintenance panel session")
        try:
            await self._backend.acquire()
        except BackendUnavailable as exc:
            # Renders retry the session on demand
            self._log.record(f"Render backend unavailable at startup: {exc}", "error")

        await self._load_devices()
        await self._driver.open()

        await asyncio.to_thread(self._pages.precache_static)

        self.state.awake = not self._scheduler.is_night()
        await self._show_page(self.state.current_page)
        await self._scheduler.start()

        self._last_refresh_slot = _refresh_slot(self._clock())
        self._refresh_task = asyncio.create_task(self._refresh_loop(), name="half-hour-refresh")

        self.status = SessionStatus.READY
        self._log.record("Panel ready")

    async def _load_devices(self) -> None:
        try:
            self.devices = await asyncio.to_thread(self._store.load)
            self._log.record(f"Loaded {len(self.devices)} devices")
        except StoreUnavailable as exc:
            self._log.record(f"Device data unavailable ({exc}); using default devices", "warning")
            self.devices = default_devices()
            await self._persist()

    async def run(self) -> None:
        """Dispatch key presses until shutdown is requested or the panel goes away."""
        consumer = asyncio.create_task(self._consume_events(), name="key-events")
        stopper = asyncio.create_task(self._shutdown_requested.wait(), name="shutdown-wait")
        try:
            await asyncio.wait({consumer, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (consumer, stopper):
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
            await self.shutdown()

    async def _consume_events(self) -> None:
        try:
            async for event in self._driver.events():
                if self.status is not SessionStatus.READY:
                    break
                self._spawn(self.handle_key(event.index), name=f"key-{event.index}")
        except PanelDriverError as exc:
            self._log.record(f"Panel error: {exc}", "error")
        if self.status is SessionStatus.READY:
            self._log.record("Panel disconnected", "error")

    def request_shutdown(self) -> None:
        """Ask :meth:`run` to stop. Safe to call from signal handlers."""
        self._shutdown_requested.set()

    async def shutdown(self) -> None:
        """Stop timers, reset the panel and release the backend. Never raises."""
        if self.status in (SessionStatus.SHUTTING_DOWN, SessionStatus.STOPPED):
            await self._stopped.wait()
            return
        self.status = SessionStatus.SHUTTING_DOWN
        self._shutdown_requested.set()
        logger.info("Shutting down maintenance panel session")

        current = asyncio.current_task()
        if self._refresh_task is not None:
            self._refresh_task.cancel()
        pending = [t for t in (*self._tasks, self._refresh_task) if t is not None and t is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        await self._best_effort("stop brightness scheduler", self._scheduler.stop())
        await self._best_effort("stop animations", self._animations.cancel_all())
        await self._best_effort("reset panel", self._driver.reset_to_default())
        await self._best_effort("close panel", self._driver.close())
        await self._backend.dispose()

        self.status = SessionStatus.STOPPED
        self._stopped.set()
        self._log.record("Controller stopped")

    async def _best_effort(self, action: str, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            await coro
        except Exception as exc:
            logger.warning("Failed to %s during shutdown: %s", action, exc)

    # Key handling

    async def handle_key(self, index: int) -> None:
        """Handle one key-down event."""
        if self.status is not SessionStatus.READY:
            return
        try:
            if not self.state.awake:
                if self._scheduler.is_night():
                    await self._scheduler.wake()
                return

            page = self.state.current_page
            dispatch = resolve_key(
                index,
                page,
                self._pages.page_count,
                len(self.devices),
                self._noop_keys.get(page, ()),
            )
            await self._scheduler.boost()

            if dispatch.action is KeyAction.NAVIGATE:
                await self._navigate(dispatch.delta)
            elif dispatch.action is KeyAction.DEVICE:
                await self._reset_device(dispatch)
            elif dispatch.action is KeyAction.DECORATIVE:
                self._log.record(f"Key {index + 1} has no action on page {page + 1}")
            else:
                self._log.record(f"Key {index + 1} is display only")
        except PanelDriverError as exc:
            self._log.record(f"Panel error handling key {index + 1}: {exc}", "error")
            if exc.fatal:
                self.request_shutdown()

    async def _navigate(self, delta: int) -> None:
        if not self._pages.navigate(delta):
            return
        await self._animations.cancel_all()
        page = self.state.current_page
        await self._show_page(page)
        self._log.record(f"Switched to page {page + 1}")

    async def _reset_device(self, dispatch: KeyDispatch) -> None:
        index = dispatch.device_index
        if index is None:
            raise ValueError(f"key {dispatch.key} is not a device key")
        device = self.devices[index]
        try:
            with self.exclusion.hold(index):
                self._log.record(f'Resetting "{device.name}"')
                device.reset(self._clock())
                await self._persist()
                await self._animations.play(status_key(dispatch.key))
                await self._refresh_device(index)
                self._log.record(f'Reset "{device.name}" completed', "success")
        except DeviceBusy:
            self._log.record(f'Skipping "{device.name}" - reset already in progress', "warning")

    async def update_lifetime(self, index: int, lifetime: float) -> Device:
        """Change a device's service interval and redraw it if visible.

        Raises:
            ValueError: If the index is unknown or the lifetime is negative.
        """
        if not 0 <= index < len(self.devices):
            raise ValueError(f"invalid device id {index}")
        device = self.devices[index]
        device.set_lifetime(lifetime)
        await self._persist()
        self._log.record(f'Lifetime of "{device.name}" set to {lifetime:g} days')
        if self.status is SessionStatus.READY:
            try:
                await self._refresh_device(index)
            except PanelDriverError as exc:
                self._log.record(f"Panel error redrawing {device.name}: {exc}", "error")
        return device

    async def refresh_current_page(self) -> None:
        """Redraw the status and date keys of the page on display."""
        page = self.state.current_page
        try:
            buffers = await self._pages.refresh_page(page, self.devices)
        except BackendUnavailable as exc:
            self._log.record(f"Page refresh aborted: {exc}", "error")
            return
        await self._display(buffers)

    # Helpers

    async def _refresh_device(self, index: int) -> None:
        try:
            buffers = await self._pages.refresh_single_device(index, self.devices)
        except (RenderFailed, BackendUnavailable) as exc:
            self._log.record(f"Could not redraw device {index + 1}: {exc}", "error")
            return
        await self._display(buffers)

    async def _show_page(self, page: int) -> None:
        try:
            buffers = await self._pages.build_page(page, self.devices)
        except BackendUnavailable as exc:
            self._log.record(f"Page {page + 1} shown without status tiles: {exc}", "error")
            buffers = self._pages.static_buffers_for(page)
        await self._display(buffers)

    async def _display(self, buffers: KeyBuffers) -> None:
        for key in sorted(buffers):
            await self._driver.set_key_image(key, buffers[key])

    async def _persist(self) -> None:
        snapshot: Sequence[Device] = [dataclasses.replace(d) for d in self.devices]
        try:
            await asyncio.to_thread(self._store.save, list(snapshot))
        except StoreUnavailable as exc:
            self._log.record(f"Could not save device data: {exc}", "error")

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_check_interval)
            now = self._clock()
            slot = _refresh_slot(now)
            if now.minute not in (0, 30) or slot == self._last_refresh_slot:
                continue
            self._last_refresh_slot = slot
            logger.info("Scheduled refresh at %s", now.strftime("%H:%M"))
            try:
                await self.refresh_current_page()
            except PanelDriverError as exc:
                self._log.record(f"Panel error during scheduled refresh: {exc}", "error")
                if exc.fatal:
                    self.request_shutdown()
            except Exception as exc:
                logger.exception("Scheduled refresh failed")
                self._log.record(f"Scheduled refresh failed: {exc}", "error")

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Key task %s failed", task.get_name(), exc_info=exc)


def _refresh_slot(now: datetime.datetime) -> tuple:
    return (now.date(), now.hour, now.minute // 30)
