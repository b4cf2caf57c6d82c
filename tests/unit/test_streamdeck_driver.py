"""Unit tests for the Stream Deck adapter with the HID layer mocked out."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from StreamDeck.Transport.Transport import TransportError

from maintdeck.exceptions import PanelDriverError
from maintdeck.panel.driver import KeyDown
from maintdeck.panel.streamdeck_driver import StreamDeckDriver
from maintdeck.rendering.images import solid_tile

pytestmark = pytest.mark.unit


@pytest.fixture
def deck():
    deck = MagicMock()
    deck.is_visual.return_value = True
    deck.key_count.return_value = 15
    deck.deck_type.return_value = "Stream Deck Original"
    deck.get_serial_number.return_value = "AL00000"
    deck.connected.return_value = True
    for name in ("set_key_image", "set_brightness", "reset", "get_serial_number"):
        getattr(deck, name).__name__ = name
    return deck


@pytest.fixture
def manager(deck):
    with patch("maintdeck.panel.streamdeck_driver.DeviceManager") as mock_manager:
        mock_manager.return_value.enumerate.return_value = [deck]
        yield mock_manager


@pytest.fixture
def native():
    with patch("maintdeck.panel.streamdeck_driver.PILHelper") as helper:
        helper.to_native_key_format.side_effect = lambda deck, image: image
        yield helper


async def test_open_resets_and_registers_callback(manager, deck):
    driver = StreamDeckDriver()

    await driver.open()

    deck.open.assert_called_once()
    deck.reset.assert_called_once()
    deck.set_key_callback.assert_called_once()


async def test_open_without_visual_deck_is_fatal(manager, deck):
    deck.is_visual.return_value = False

    with pytest.raises(PanelDriverError) as exc_info:
        await StreamDeckDriver().open()

    assert exc_info.value.fatal


async def test_key_down_events_reach_the_loop(manager, deck):
    driver = StreamDeckDriver()
    await driver.open()
    callback = deck.set_key_callback.call_args[0][0]

    await asyncio.to_thread(callback, deck, 3, False)
    await asyncio.to_thread(callback, deck, 7, True)

    events = driver.events()
    assert await asyncio.wait_for(events.__anext__(), timeout=1) == KeyDown(7)
    await driver.close()


async def test_bgr_buffers_are_decoded_to_rgb(manager, native, deck):
    driver = StreamDeckDriver(channel_order="BGR")
    await driver.open()

    await driver.set_key_image(4, bytes([0, 0, 255]) * 72 * 72)

    key, image = deck.set_key_image.call_args[0]
    assert key == 4
    assert image.getpixel((0, 0)) == (255, 0, 0)


async def test_transport_error_on_disconnected_deck_is_fatal(manager, native, deck):
    driver = StreamDeckDriver()
    await driver.open()
    deck.set_key_image.side_effect = TransportError("write failed")
    deck.connected.return_value = False

    with pytest.raises(PanelDriverError) as exc_info:
        await driver.set_key_image(0, solid_tile())

    assert exc_info.value.fatal
    remaining = [event async for event in driver.events()]
    assert remaining == []


async def test_transient_transport_error_is_not_fatal(manager, deck):
    driver = StreamDeckDriver()
    await driver.open()
    deck.set_brightness.side_effect = TransportError("busy")

    with pytest.raises(PanelDriverError) as exc_info:
        await driver.set_brightness(50)

    assert not exc_info.value.fatal


async def test_calls_before_open_raise(manager):
    with pytest.raises(PanelDriverError):
        await StreamDeckDriver().set_brightness(10)


async def test_close_ends_event_stream(manager, deck):
    driver = StreamDeckDriver()
    await driver.open()

    await driver.close()

    deck.close.assert_called_once()
    assert [event async for event in driver.events()] == []
