"""aiohttp configuration endpoint for the maintenance panel.

Routes:
    GET  /devices       device list with remaining days
    POST /devices/{id}  update a device's lifetime
    GET  /logs          operator event log, newest first
    GET  /ws            WebSocket pushing the event log on every new entry
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Optional

from aiohttp import WSMsgType, web
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from maintdeck.core.time_utils import Clock, now_local
from maintdeck.domain.event_log import EventLog

if TYPE_CHECKING:
    from maintdeck.config_loader import Config
    from maintdeck.session import SessionController

logger = logging.getLogger(__name__)

WEBSOCKETS_KEY = web.AppKey("websockets", set)


class LifetimeUpdate(BaseModel):
    """Body of ``POST /devices/{id}``."""

    model_config = ConfigDict(extra="ignore")

    lifetime: float = Field(..., ge=0, allow_inf_nan=False, description="Service interval in days")


def _logs_message(entries: list[dict[str, Any]]) -> dict[str, Any]:
    return {"type": "logs", "data": entries}


def register_device_routes(
    app: web.Application,
    controller: SessionController,
    event_log: EventLog,
    clock: Clock = now_local,
) -> None:
    """Register the device, log and WebSocket routes.

    Args:
        app: aiohttp web application
        controller: Session controller owning the device list
        event_log: Operator event log to expose and stream
        clock: Time source for remaining-days computation
    """
    app[WEBSOCKETS_KEY] = set()

    async def list_devices(_request: web.Request) -> web.Response:
        now = clock()
        payload = []
        for index, device in enumerate(controller.devices):
            item = device.to_dict()
            item["id"] = index
            item["daysLeft"] = device.days_left(now)
            payload.append(item)
        return web.json_response(payload)

    async def update_device(request: web.Request) -> web.Response:
        try:
            index = int(request.match_info["id"])
        except ValueError:
            return web.json_response({"error": "Invalid device ID"}, status=400)
        if not 0 <= index < len(controller.devices):
            return web.json_response({"error": "Invalid device ID"}, status=400)

        try:
            body = await request.json()
        except ValueError:
            return web.json_response({"error": "invalid json"}, status=400)

        try:
            update = LifetimeUpdate.model_validate(body)
        except ValidationError as exc:
            details = [err.get("msg", "") for err in exc.errors()]
            return web.json_response({"error": "invalid body", "details": details}, status=400)

        try:
            await controller.update_lifetime(index, update.lifetime)
        except ValueError as exc:
            return web.json_response({"error": str(exc)}, status=400)
        return web.json_response({"success": True})

    async def get_logs(_request: web.Request) -> web.Response:
        return web.json_response(event_log.entries())

    async def websocket(request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)
        request.app[WEBSOCKETS_KEY].add(ws)
        logger.debug("WebSocket client connected (%d total)", len(request.app[WEBSOCKETS_KEY]))
        try:
            await ws.send_json(_logs_message(event_log.entries()))
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    logger.warning("WebSocket closed with exception %s", ws.exception())
        finally:
            request.app[WEBSOCKETS_KEY].discard(ws)
        return ws

    def broadcast(entries: list[dict[str, Any]]) -> None:
        clients = [ws for ws in app[WEBSOCKETS_KEY] if not ws.closed]
        if not clients:
            return
        message = _logs_message(entries)
        for ws in clients:
            task = asyncio.get_running_loop().create_task(ws.send_json(message))
            task.add_done_callback(_log_send_error)

    unsubscribe = event_log.subscribe(broadcast)

    async def _on_shutdown(app: web.Application) -> None:
        unsubscribe()
        for ws in list(app[WEBSOCKETS_KEY]):
            await ws.close(code=1001, message=b"Server shutdown")

    app.on_shutdown.append(_on_shutdown)

    app.router.add_get("/devices", list_devices)
    app.router.add_post("/devices/{id}", update_device)
    app.router.add_get("/logs", get_logs)
    app.router.add_get("/ws", websocket)


def _log_send_error(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("WebSocket send failed: %s", exc)


def create_app(controller: SessionController, event_log: EventLog, clock: Clock = now_local) -> web.Application:
    app = web.Application()
    register_device_routes(app, controller, event_log, clock)
    return app


async def start_web_server(
    config: Config,
    controller: SessionController,
    event_log: EventLog,
) -> Optional[web.AppRunner]:
    """Start the HTTP endpoint in the running loop.

    Returns:
        The runner to clean up on shutdown, or None if the port could not be bound.
    """
    app = create_app(controller, event_log)
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()

    site = web.TCPSite(runner, host=config.server_bind, port=config.server_port)
    try:
        await site.start()
    except OSError as exc:
        logger.error("Failed to start HTTP endpoint on %s:%d: %s", config.server_bind, config.server_port, exc)
        await runner.cleanup()
        return None

    logger.info("HTTP endpoint listening on %s:%d", config.server_bind, config.server_port)
    return runner
