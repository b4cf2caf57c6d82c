"""Application coordinator.

Builds the controller's components from configuration, wires signal handling
and the HTTP endpoint, and runs the session until shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from pathlib import Path
from typing import Optional

from maintdeck.api.server import start_web_server
from maintdeck.config_loader import Config
from maintdeck.core.time_utils import Clock, now_local
from maintdeck.domain.device_store import DeviceStore
from maintdeck.domain.event_log import EventLog
from maintdeck.exceptions import PanelDriverError
from maintdeck.panel.animation import AnimationPlayer, load_frames
from maintdeck.panel.brightness import BrightnessScheduler
from maintdeck.panel.driver import PanelDriver
from maintdeck.panel.pages import PageManager
from maintdeck.panel.state import PanelSessionState
from maintdeck.rendering.backend import RenderBackend, SessionFactory
from maintdeck.rendering.tiles import TileRenderer
from maintdeck.session import SessionController

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class MaintDeckApp:
    """Owns one controller session and its HTTP endpoint."""

    def __init__(
        self,
        config: Config,
        driver: Optional[PanelDriver] = None,
        session_factory: Optional[SessionFactory] = None,
        clock: Clock = now_local,
        asset_root: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.clock = clock

        if driver is None:
            from maintdeck.panel.streamdeck_driver import StreamDeckDriver  # noqa: PLC0415

            driver = StreamDeckDriver(channel_order=config.channel_order)
        self.driver = driver

        self.event_log = EventLog(config.log_path, max_entries=config.max_log_entries, clock=clock)
        self.store = DeviceStore(config.data_path)
        self.state = PanelSessionState()

        self.backend = RenderBackend(
            session_factory=session_factory,
            timeout=config.render_timeout_seconds,
            chromium_path=config.chromium_path,
        )
        self.renderer = TileRenderer(
            self.backend,
            clock=clock,
            warning_policy=config.warning_policy,
            warning_ratio=config.warning_ratio,
            unit_singular=config.unit_singular,
            unit_plural=config.unit_plural,
            channel_order=config.channel_order,
        )
        self.pages = PageManager(
            self.renderer,
            self.state,
            page_count=config.page_count,
            static_icons=config.static_icons,
            asset_root=asset_root,
        )
        self.scheduler = BrightnessScheduler(
            self.driver,
            self.state,
            event_log=self.event_log,
            clock=clock,
            night_mode_start=config.night_mode_start,
            night_mode_end=config.night_mode_end,
            day_brightness=config.day_brightness,
            night_brightness=config.night_brightness,
            boost_duration=config.boost_duration_seconds,
            tick_interval=config.brightness_tick_seconds,
        )
        self.animations = AnimationPlayer(
            self.driver,
            load_frames(config.celebration_frames, self.renderer.to_panel_order, asset_root),
            frame_interval=config.frame_interval_ms / 1000.0,
        )
        self.controller = SessionController(
            self.driver,
            self.backend,
            self.pages,
            self.scheduler,
            self.animations,
            self.store,
            self.event_log,
            self.state,
            clock=clock,
            noop_keys=config.noop_keys,
            refresh_check_interval=config.refresh_check_seconds,
        )

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        def _on_signal(sig: signal.Signals) -> None:
            logger.info("Received %s, shutting down", sig.name)
            self.event_log.record(f"Received {sig.name}, shutting down")
            self.controller.request_shutdown()

        for sig in SHUTDOWN_SIGNALS:
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, _on_signal, sig)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)

    async def run(self) -> int:
        """Run until shutdown.

        Returns:
            Process exit code: 0 on a clean stop, 1 if the panel could not be opened.
        """
        loop = asyncio.get_running_loop()
        self.event_log.load()
        self._install_signal_handlers(loop)

        runner = None
        try:
            try:
                await self.controller.start()
            except PanelDriverError as exc:
                self.event_log.record(f"Could not start panel: {exc}", "error")
                await self.controller.shutdown()
                return 1

            if self.config.server_enabled:
                runner = await start_web_server(self.config, self.controller, self.event_log)

            await self.controller.run()
            return 0
        finally:
            if runner is not None:
                await runner.cleanup()
            self._remove_signal_handlers(loop)
            logger.info("Shutdown complete")
