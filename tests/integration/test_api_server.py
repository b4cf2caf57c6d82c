"""Integration tests for the HTTP configuration endpoint."""

import json
from unittest.mock import patch

import pytest
from aiohttp.test_utils import TestClient, TestServer

from maintdeck.api.server import create_app, start_web_server
from maintdeck.app import MaintDeckApp
from maintdeck.config_loader import Config
from tests.fakes import FakePanelDriver, FakeSessionFactory

pytestmark = pytest.mark.integration


@pytest.fixture
def config(tmp_path):
    return Config(
        data_path=str(tmp_path / "data.json"),
        log_path=str(tmp_path / "logs.json"),
        static_icons={},
        celebration_frames=[],
        server_enabled=False,
    )


@pytest.fixture
async def maintdeck_app(config, clock):
    app = MaintDeckApp(config, driver=FakePanelDriver(), session_factory=FakeSessionFactory(), clock=clock)
    await app.controller.start()
    yield app
    await app.controller.shutdown()


@pytest.fixture
async def test_client(maintdeck_app, clock):
    web_app = create_app(maintdeck_app.controller, maintdeck_app.event_log, clock)
    async with TestClient(TestServer(web_app)) as client:
        yield client


class TestDevicesEndpoint:
    async def test_list_devices(self, test_client):
        response = await test_client.get("/devices")

        assert response.status == 200
        data = await response.json()
        assert len(data) == 10
        assert data[0] == {"name": "Ore PGL1", "lifetime": 2, "lastReset": None, "id": 0, "daysLeft": 2.0}
        assert [d["id"] for d in data] == list(range(10))

    async def test_update_lifetime(self, test_client, config):
        response = await test_client.post("/devices/3", json={"lifetime": 12})

        assert response.status == 200
        assert await response.json() == {"success": True}

        listed = await (await test_client.get("/devices")).json()
        assert listed[3]["lifetime"] == 12
        with open(config.data_path, encoding="utf-8") as fh:
            assert json.load(fh)[3]["lifetime"] == 12

    async def test_extra_fields_are_ignored(self, test_client):
        response = await test_client.post("/devices/0", json={"lifetime": 1.5, "name": "renamed"})

        assert response.status == 200
        listed = await (await test_client.get("/devices")).json()
        assert listed[0]["name"] == "Ore PGL1"
        assert listed[0]["lifetime"] == 1.5

    @pytest.mark.parametrize("device_id", ["abc", "10", "-1"])
    async def test_invalid_device_id(self, test_client, device_id):
        response = await test_client.post(f"/devices/{device_id}", json={"lifetime": 3})

        assert response.status == 400
        assert await response.json() == {"error": "Invalid device ID"}

    async def test_invalid_json_body(self, test_client):
        response = await test_client.post(
            "/devices/0", data="{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status == 400
        assert (await response.json())["error"] == "invalid json"

    async def test_infinite_lifetime_rejected_and_not_saved(self, test_client, config, maintdeck_app):
        response = await test_client.post(
            "/devices/0", data='{"lifetime": 1e400}', headers={"Content-Type": "application/json"}
        )

        assert response.status == 400
        assert (await response.json())["error"] == "invalid body"
        assert maintdeck_app.controller.devices[0].lifetime_days == 2
        with open(config.data_path, encoding="utf-8") as fh:
            assert json.load(fh)[0]["lifetime"] == 2

        await maintdeck_app.controller.refresh_current_page()

    @pytest.mark.parametrize("body", [{}, {"lifetime": -1}, {"lifetime": "soon"}])
    async def test_invalid_body(self, test_client, body):
        response = await test_client.post("/devices/0", json=body)

        assert response.status == 400
        data = await response.json()
        assert data["error"] == "invalid body"
        assert data["details"]


class TestLogsEndpoint:
    async def test_logs_newest_first(self, test_client):
        await test_client.post("/devices/1", json={"lifetime": 8})

        response = await test_client.get("/logs")

        assert response.status == 200
        entries = await response.json()
        assert entries[0]["message"] == 'Lifetime of "Ore PGL2" set to 8 days'
        assert {"timestamp", "message", "type"} <= set(entries[0])
        assert any(e["message"] == "Panel ready" for e in entries)

    async def test_websocket_pushes_snapshot_then_updates(self, test_client):
        ws = await test_client.ws_connect("/ws")

        first = await ws.receive_json(timeout=2)
        assert first["type"] == "logs"
        assert any(e["message"] == "Panel ready" for e in first["data"])

        await test_client.post("/devices/3", json={"lifetime": 6})

        update = await ws.receive_json(timeout=2)
        assert update["type"] == "logs"
        assert update["data"][0]["message"] == 'Lifetime of "Kam Ref" set to 6 days'
        await ws.close()


async def test_start_web_server_returns_none_when_port_taken(maintdeck_app, config):
    with patch("aiohttp.web.TCPSite.start", side_effect=OSError("address in use")):
        runner = await start_web_server(config, maintdeck_app.controller, maintdeck_app.event_log)

    assert runner is None
