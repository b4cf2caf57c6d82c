"""Shared fixtures for maintdeck tests."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import pytest

from maintdeck.domain.device import Device
from maintdeck.domain.event_log import EventLog
from maintdeck.rendering.backend import RenderBackend
from tests.fakes import FakeClock, FakePanelDriver, FakeSessionFactory


def pytest_configure(config: Any) -> None:
    """Register markers used across the suite."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests that wire several components together")


@pytest.fixture
def clock() -> FakeClock:
    """Noon on a fixed day, local timezone."""
    return FakeClock(datetime(2025, 3, 3, 12, 0, 0).astimezone())


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def backend(session_factory: FakeSessionFactory) -> RenderBackend:
    return RenderBackend(session_factory=session_factory, timeout=1.0)


@pytest.fixture
def driver() -> FakePanelDriver:
    return FakePanelDriver()


@pytest.fixture
def event_log(clock: FakeClock) -> EventLog:
    return EventLog(None, clock=clock)


@pytest.fixture
def devices() -> list[Device]:
    return [
        Device("Ore PGL1", 2),
        Device("Ore PGL2", 7),
        Device("Ore Met", 4),
        Device("Kam Ref", 5),
        Device("Vaer Trykker", 3),
        Device("Enhet 6", 3),
        Device("Enhet 7", 4),
    ]


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> None:
    """Keep MAINTDECK_* variables from the host out of tests."""
    for key in (
        "MAINTDECK_TEST_TIME",
        "MAINTDECK_DATA_PATH",
        "MAINTDECK_LOG_PATH",
        "MAINTDECK_WEB_HOST",
        "MAINTDECK_WEB_PORT",
        "MAINTDECK_LOG_LEVEL",
        "MAINTDECK_PAGE_COUNT",
        "MAINTDECK_CHROMIUM_PATH",
        "MAINTDECK_DEBUG",
    ):
        monkeypatch.delenv(key, raising=False)
