"""Unit tests for the session controller."""

import asyncio
from datetime import datetime

import pytest

from maintdeck.domain.device_store import DeviceStore
from maintdeck.exceptions import DeviceBusy, PanelDriverError
from maintdeck.panel.animation import AnimationPlayer
from maintdeck.panel.brightness import BrightnessScheduler
from maintdeck.panel.layout import KeyAction, KeyDispatch
from maintdeck.panel.pages import PageManager
from maintdeck.panel.state import PanelSessionState
from maintdeck.rendering.backend import RenderBackend
from maintdeck.rendering.tiles import TileRenderer
from maintdeck.session import ExclusionSet, SessionController, SessionStatus

pytestmark = pytest.mark.unit

FRAME = b"\x10" * 3


def _local(hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2025, 3, 3, hour, minute, second).astimezone()


def _messages(event_log):
    return [e["message"] for e in event_log.entries()]


@pytest.fixture
def store(tmp_path, devices):
    store = DeviceStore(tmp_path / "data.json")
    store.save(devices)
    return store


@pytest.fixture
async def make_controller(driver, session_factory, event_log, clock, store):
    created = []

    def _make(refresh_check_interval=30.0, noop_keys=None, frames=(FRAME,) * 3):
        state = PanelSessionState()
        backend = RenderBackend(session_factory=session_factory, timeout=1.0)
        renderer = TileRenderer(backend, clock=clock)
        pages = PageManager(renderer, state, page_count=2)
        scheduler = BrightnessScheduler(driver, state, event_log=event_log, clock=clock, tick_interval=3600)
        animations = AnimationPlayer(driver, frames, frame_interval=0.001)
        controller = SessionController(
            driver,
            backend,
            pages,
            scheduler,
            animations,
            store,
            event_log,
            state,
            clock=clock,
            noop_keys=noop_keys,
            refresh_check_interval=refresh_check_interval,
        )
        created.append(controller)
        return controller

    yield _make

    for controller in created:
        await controller.shutdown()


@pytest.fixture
def controller(make_controller):
    return make_controller()


class TestExclusionSet:
    def test_hold_releases_on_exit(self):
        exclusion = ExclusionSet()
        with exclusion.hold(3):
            assert 3 in exclusion
            assert len(exclusion) == 1
        assert 3 not in exclusion

    def test_second_hold_raises(self):
        exclusion = ExclusionSet()
        with exclusion.hold(3):
            with pytest.raises(DeviceBusy):
                with exclusion.hold(3):
                    pass
            assert 3 in exclusion


class TestStart:
    async def test_start_shows_first_page(self, controller, driver, event_log):
        await controller.start()

        assert controller.status is SessionStatus.READY
        assert driver.opened
        assert sorted(driver.images) == list(range(15))
        assert len(controller.devices) == 7
        assert "Panel ready" in _messages(event_log)

    async def test_missing_store_falls_back_to_defaults(self, controller, store, event_log):
        store.path.unlink()

        await controller.start()

        assert len(controller.devices) == 10
        assert len(store.load()) == 10
        assert any("using default devices" in m for m in _messages(event_log))

    async def test_backend_down_at_startup_shows_static_keys(self, controller, driver, session_factory, event_log):
        session_factory.fail = True

        await controller.start()

        assert controller.status is SessionStatus.READY
        assert sorted(driver.images) == [0, 1, 2, 3, 4]
        assert any("Render backend unavailable at startup" in m for m in _messages(event_log))

    async def test_panel_open_failure_propagates(self, controller, driver):
        driver.open_error = PanelDriverError("no panel", fatal=True)
        with pytest.raises(PanelDriverError):
            await controller.start()


class TestDeviceReset:
    async def test_press_resets_persists_and_animates(self, controller, driver, store, clock, event_log):
        await controller.start()
        driver.writes.clear()

        await controller.handle_key(0)

        assert controller.devices[0].last_reset == clock()
        assert store.load()[0].last_reset == clock()
        assert driver.writes[:3] == [5, 5, 5]
        assert {5, 10} <= set(driver.writes[3:])
        messages = _messages(event_log)
        assert messages[0] == 'Reset "Ore PGL1" completed'
        assert 'Resetting "Ore PGL1"' in messages
        assert event_log.entries()[0]["type"] == "success"

    async def test_busy_device_is_skipped_without_persisting(self, controller, store, event_log):
        await controller.start()

        with controller.exclusion.hold(1):
            await controller.handle_key(1)

        assert controller.devices[1].last_reset is None
        assert store.load()[1].last_reset is None
        entry = event_log.entries()[0]
        assert entry["message"] == 'Skipping "Ore PGL2" - reset already in progress'
        assert entry["type"] == "warning"

    async def test_concurrent_resets_of_different_devices(self, controller):
        await controller.start()

        await asyncio.gather(controller.handle_key(0), controller.handle_key(2))

        assert controller.devices[0].last_reset is not None
        assert controller.devices[2].last_reset is not None
        assert len(controller.exclusion) == 0

    async def test_page_two_key_maps_to_second_window(self, controller):
        await controller.start()
        await controller.handle_key(14)

        await controller.handle_key(1)

        assert controller.devices[6].last_reset is not None
        assert controller.devices[1].last_reset is None

    async def test_key_past_device_list_is_decorative(self, controller, store, event_log):
        await controller.start()
        await controller.handle_key(14)

        await controller.handle_key(3)

        assert "Key 4 has no action on page 2" in _messages(event_log)
        assert all(d.last_reset is None for d in store.load())

    async def test_noop_keys_are_ignored(self, make_controller, event_log):
        ctl = make_controller(noop_keys={0: [0]})
        await ctl.start()
        try:
            await ctl.handle_key(0)
            assert ctl.devices[0].last_reset is None
            assert "Key 1 has no action on page 1" in _messages(event_log)
        finally:
            await ctl.shutdown()


class TestNavigation:
    async def test_next_and_previous(self, controller, driver, event_log):
        await controller.start()

        await controller.handle_key(14)
        assert controller.state.current_page == 1
        assert "Switched to page 2" in _messages(event_log)

        await controller.handle_key(14)
        assert controller.state.current_page == 1

        await controller.handle_key(10)
        assert controller.state.current_page == 0

    async def test_prev_on_first_page_is_display_only(self, controller, event_log):
        await controller.start()

        await controller.handle_key(10)

        assert controller.state.current_page == 0
        assert "Key 11 is display only" in _messages(event_log)

    async def test_navigation_cancels_running_animations(self, make_controller):
        ctl = make_controller(frames=(FRAME,) * 500)
        await ctl.start()
        try:
            task = ctl._animations.start(6)
            await asyncio.sleep(0.01)

            await ctl.handle_key(14)

            assert ctl._animations.running_keys() == []
            await task
        finally:
            await ctl.shutdown()


class TestNightWake:
    async def test_first_press_at_night_only_wakes(self, controller, clock, driver):
        clock.now = _local(22)
        await controller.start()
        assert controller.state.awake is False

        await controller.handle_key(0)

        assert controller.state.awake is True
        assert controller.devices[0].last_reset is None
        assert driver.brightness[-1] == 80

        await controller.handle_key(0)
        assert controller.devices[0].last_reset is not None


class TestLifetimeAndRefresh:
    async def test_update_lifetime_persists_and_redraws(self, controller, driver, store):
        await controller.start()
        driver.writes.clear()

        device = await controller.update_lifetime(2, 9)

        assert device.lifetime_days == 9
        assert store.load()[2].lifetime_days == 9
        assert set(driver.writes) == {7, 12}

    async def test_update_lifetime_rejects_bad_input(self, controller):
        await controller.start()
        with pytest.raises(ValueError):
            await controller.update_lifetime(7, 3)
        with pytest.raises(ValueError):
            await controller.update_lifetime(0, -1)

    async def test_refresh_current_page_redraws_rows(self, controller, driver):
        await controller.start()
        driver.writes.clear()

        await controller.refresh_current_page()

        assert sorted(driver.writes) == list(range(5, 15))

    async def test_refresh_with_backend_down_is_recorded(self, controller, session_factory, event_log):
        await controller.start()
        await controller._backend.dispose()
        session_factory.fail = True

        await controller.refresh_current_page()

        assert any("Page refresh aborted" in m for m in _messages(event_log))

    async def test_half_hour_refresh(self, make_controller, clock, driver):
        clock.now = _local(12, 29, 50)
        ctl = make_controller(refresh_check_interval=0.01)
        await ctl.start()
        try:
            driver.writes.clear()
            await asyncio.sleep(0.05)
            assert driver.writes == []

            clock.now = _local(12, 30, 5)
            await asyncio.sleep(0.1)
            assert driver.writes.count(5) == 1

            await asyncio.sleep(0.05)
            assert driver.writes.count(5) == 1
        finally:
            await ctl.shutdown()


class TestUnexpectedErrors:
    async def test_half_hour_refresh_survives_render_error(self, make_controller, clock, driver, event_log):
        clock.now = _local(12, 29, 50)
        ctl = make_controller(refresh_check_interval=0.01)
        await ctl.start()

        renderer = ctl._pages._renderer
        original_spec = renderer.status_spec
        broken = True

        def status_spec(device):
            if broken:
                raise OverflowError("cannot convert float infinity to integer")
            return original_spec(device)

        renderer.status_spec = status_spec
        driver.writes.clear()

        clock.now = _local(12, 30, 5)
        await asyncio.sleep(0.1)
        assert driver.writes == []
        assert any(m.startswith("Scheduled refresh failed") for m in _messages(event_log))

        broken = False
        clock.now = _local(13, 0, 5)
        await asyncio.sleep(0.1)
        assert driver.writes.count(5) == 1

    async def test_device_dispatch_without_index_is_rejected(self, controller, store):
        await controller.start()

        with pytest.raises(ValueError):
            await controller._reset_device(KeyDispatch(KeyAction.DEVICE, 0))

        assert store.load()[0].last_reset is None

    async def test_failing_key_task_is_logged_and_session_continues(self, controller, driver, caplog):
        await controller.start()
        runner = asyncio.create_task(controller.run())

        async def broken_reset(dispatch):
            raise RuntimeError("boom")

        controller._reset_device = broken_reset
        driver.press(0)
        driver.press(14)

        for _ in range(100):
            if controller.state.current_page == 1:
                break
            await asyncio.sleep(0.01)

        assert controller.state.current_page == 1
        assert "Key task key-0 failed" in caplog.text
        assert controller.status is SessionStatus.READY

        controller.request_shutdown()
        await asyncio.wait_for(runner, timeout=2)


class TestShutdown:
    async def test_shutdown_is_idempotent(self, controller, driver, event_log):
        await controller.start()

        await controller.shutdown()
        await controller.shutdown()

        assert controller.status is SessionStatus.STOPPED
        assert driver.reset_count == 1
        assert driver.closed
        assert not controller._backend.has_session
        assert _messages(event_log).count("Controller stopped") == 1

    async def test_fatal_driver_error_stops_session(self, controller, driver):
        await controller.start()
        runner = asyncio.create_task(controller.run())
        await asyncio.sleep(0)

        driver.write_error = PanelDriverError("device gone", fatal=True)
        driver.press(0)

        await asyncio.wait_for(runner, timeout=2)
        assert controller.status is SessionStatus.STOPPED

    async def test_disconnect_ends_run(self, controller, driver, event_log):
        await controller.start()
        runner = asyncio.create_task(controller.run())
        await asyncio.sleep(0)

        driver.disconnect()

        await asyncio.wait_for(runner, timeout=2)
        assert controller.status is SessionStatus.STOPPED
        assert "Panel disconnected" in _messages(event_log)

    async def test_request_shutdown_ends_run(self, controller):
        await controller.start()
        runner = asyncio.create_task(controller.run())
        await asyncio.sleep(0)

        controller.request_shutdown()

        await asyncio.wait_for(runner, timeout=2)
        assert controller.status is SessionStatus.STOPPED

    async def test_presses_after_shutdown_are_ignored(self, controller, store):
        await controller.start()
        await controller.shutdown()

        await controller.handle_key(0)

        assert store.load()[0].last_reset is None
