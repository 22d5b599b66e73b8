"""HTTP binding for the command relay.

Human-facing routes submit commands and hold the request open until the
device answers. Device-facing routes let the vehicle fetch its next command
(optionally as a long poll) and report the outcome.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from .auth import CommandAuthorizer, DeviceTokenAuth
from .core import Command, RelayClosedError
from .health import HealthReporter
from .notify import PushNotifier
from .relay import CommandRelay
from .sensors import SensorStore, record_ignition, vehicle_sensor_name

LOGGER = logging.getLogger(__name__)

CAR_ACTIONS = ("start", "lock", "unlock")


async def _read_body(request: web.Request) -> Dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _unavailable() -> web.Response:
    return web.json_response(
        {"ok": False, "error": "relay unavailable"}, status=503
    )


class RelayHttpApi:
    """Routes requests onto a :class:`CommandRelay` and its collaborators."""

    def __init__(
        self,
        relay: CommandRelay,
        *,
        authorizer: CommandAuthorizer,
        device_auth: DeviceTokenAuth,
        sensors: SensorStore,
        default_device_id: str,
        notifier: Optional[PushNotifier] = None,
        health: Optional[HealthReporter] = None,
        notify_title: Optional[str] = None,
    ) -> None:
        self._relay = relay
        self._authorizer = authorizer
        self._device_auth = device_auth
        self._sensors = sensors
        self._default_device_id = default_device_id
        self._notifier = notifier
        self._health = health or HealthReporter()
        self._health.register_source(
            "relay", stats=relay.stats, available=lambda: not relay.closed
        )
        self._notify_title = notify_title

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/command", self._handle_command)
        for action in CAR_ACTIONS:
            handler = self._car_handler(action)
            app.router.add_post(f"/car/{action}", handler)
            # Legacy paths still used by older dashboards.
            app.router.add_post(f"/{action}-car", handler)
        app.router.add_get("/car/status", self._handle_car_status)
        app.router.add_get("/device/next", self._handle_device_next)
        app.router.add_post("/device/result", self._handle_device_result)
        app.router.add_get("/healthz", self._handle_health)
        return app

    def _car_handler(self, action: str):
        async def handler(request: web.Request) -> web.Response:
            body = await _read_body(request)
            return await self._dispatch(
                request, body, self._default_device_id, action
            )

        return handler

    async def _handle_command(self, request: web.Request) -> web.Response:
        body = await _read_body(request)
        return await self._dispatch(
            request, body, _text(body.get("deviceId")), _text(body.get("action"))
        )

    async def _dispatch(
        self,
        request: web.Request,
        body: Dict[str, Any],
        device_id: str,
        action: str,
    ) -> web.Response:
        password = body.get("password")
        if not await self._authorizer.is_authorized(
            password if isinstance(password, str) else None, request.headers
        ):
            return web.json_response({"ok": False, "error": "Forbidden"}, status=403)

        if not device_id or not action:
            return web.json_response(
                {"ok": False, "error": "Missing deviceId or action"}, status=400
            )

        try:
            outcome = await self._relay.submit(
                device_id, action, on_queued=self._announce
            )
        except RelayClosedError:
            return _unavailable()
        return web.json_response(outcome.as_dict())

    def _announce(self, command: Command) -> None:
        if self._notifier is None:
            return
        if command.device_id == self._default_device_id and self._notify_title:
            title = self._notify_title
        else:
            title = command.device_id.title()
        self._notifier.notify(f"Car command: {command.action}", title)

    async def _handle_car_status(self, request: web.Request) -> web.Response:
        device_id = _text(request.query.get("deviceId")) or self._default_device_id
        reading = self._sensors.get(vehicle_sensor_name(device_id))
        if reading is None:
            return web.json_response({"value": "unknown", "updatedAt": None})
        return web.json_response(reading.as_dict())

    async def _handle_device_next(self, request: web.Request) -> web.Response:
        if not self._device_auth.is_authorized(request.headers):
            return web.json_response({"ok": False, "error": "unauthorized"}, status=401)

        device_id = _text(request.query.get("deviceId"))
        if not device_id:
            return web.json_response(
                {"cmd": None, "error": "Missing deviceId"}, status=400
            )

        record_ignition(self._sensors, device_id, request.query.get("carOn"))

        if request.query.get("wait") == "1":
            try:
                command = await self._relay.await_next(device_id)
            except RelayClosedError:
                return _unavailable()
        else:
            command = self._relay.fetch_next(device_id)

        if command is None:
            return web.json_response({"cmd": None})
        return web.json_response(command.as_dict())

    async def _handle_device_result(self, request: web.Request) -> web.Response:
        if not self._device_auth.is_authorized(request.headers):
            return web.json_response({"ok": False, "error": "unauthorized"}, status=401)

        body = await _read_body(request)
        device_id = _text(body.get("deviceId"))
        command_id = _text(body.get("cmdId"))
        if not device_id or not command_id:
            return web.json_response(
                {"ok": False, "error": "Missing deviceId or cmdId"}, status=400
            )

        record_ignition(self._sensors, device_id, body.get("carOn"))

        message = body.get("message")
        self._relay.report_result(
            device_id,
            command_id,
            body.get("ok"),
            message if isinstance(message, str) else None,
        )
        return web.json_response({"ok": True})

    async def _handle_health(self, request: web.Request) -> web.Response:
        snapshot = await self._health.snapshot()
        status = 200 if snapshot["status"] == "ok" else 503
        return web.json_response(snapshot, status=status)
