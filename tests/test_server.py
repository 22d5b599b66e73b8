"""Tests for the HTTP binding of the relay."""

from __future__ import annotations

import asyncio
from typing import Optional

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from homebase_relay.auth import CommandAuthorizer, DeviceTokenAuth
from homebase_relay.config import OverwritePolicy
from homebase_relay.health import HealthReporter
from homebase_relay.relay import CommandRelay
from homebase_relay.sensors import SensorStore
from homebase_relay.server import RelayHttpApi

ADMIN = "admin-secret"
DEVICE_TOKEN = "device-token"
DEVICE_HEADERS = {"Authorization": f"Bearer {DEVICE_TOKEN}"}


class _RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, Optional[str]]] = []

    def notify(self, message: str, title: Optional[str] = None) -> None:
        self.messages.append((message, title))


async def _validator(password: str) -> bool:
    return password == "household-pin"


async def _start_client(
    relay: CommandRelay, sensors: SensorStore, notifier: _RecordingNotifier
) -> TestClient:
    health = HealthReporter()
    await health.update("http", True)
    api = RelayHttpApi(
        relay,
        authorizer=CommandAuthorizer(ADMIN, password_validator=_validator),
        device_auth=DeviceTokenAuth(DEVICE_TOKEN),
        sensors=sensors,
        default_device_id="SUBURBAN",
        notifier=notifier,  # type: ignore[arg-type]
        health=health,
        notify_title="Suburban",
    )
    client = TestClient(TestServer(api.build_app()))
    await client.start_server()
    return client


@pytest_asyncio.fixture
async def harness():
    relay = CommandRelay(command_timeout=2.0, long_poll_max=2.0)
    sensors = SensorStore()
    notifier = _RecordingNotifier()
    client = await _start_client(relay, sensors, notifier)
    try:
        yield client, relay, sensors, notifier
    finally:
        relay.shutdown()
        await client.close()


async def _poll_until_command(client: TestClient, device_id: str = "SUBURBAN"):
    for _ in range(100):
        response = await client.get(
            "/device/next", params={"deviceId": device_id}, headers=DEVICE_HEADERS
        )
        payload = await response.json()
        if payload["cmd"] is not None:
            return payload
        await asyncio.sleep(0.01)
    raise AssertionError("command never became visible to the device")


@pytest.mark.asyncio
async def test_command_round_trip_through_http(harness):
    client, _, _, notifier = harness

    submit = asyncio.ensure_future(
        client.post(
            "/command",
            json={"deviceId": "SUBURBAN", "action": "start", "password": ADMIN},
        )
    )
    pending = await _poll_until_command(client)
    assert pending["cmd"] == "start"

    result = await client.post(
        "/device/result",
        json={
            "deviceId": "SUBURBAN",
            "cmdId": pending["cmdId"],
            "ok": True,
            "message": "engine running",
        },
        headers=DEVICE_HEADERS,
    )
    assert result.status == 200
    assert await result.json() == {"ok": True}

    response = await submit
    assert response.status == 200
    assert await response.json() == {"ok": True, "message": "engine running"}
    assert notifier.messages == [("Car command: start", "Suburban")]


@pytest.mark.asyncio
async def test_car_routes_use_default_device_and_bearer_auth(harness):
    client, relay, _, _ = harness

    submit = asyncio.ensure_future(
        client.post("/car/lock", headers={"Authorization": f"Bearer {ADMIN}"})
    )
    pending = await _poll_until_command(client)
    assert pending["cmd"] == "lock"
    relay.report_result("SUBURBAN", pending["cmdId"], False, "door open")

    response = await submit
    assert await response.json() == {"ok": False, "message": "door open"}


@pytest.mark.asyncio
async def test_legacy_route_accepts_validated_password(harness):
    client, relay, _, _ = harness

    submit = asyncio.ensure_future(
        client.post("/unlock-car", json={"password": "household-pin"})
    )
    pending = await _poll_until_command(client)
    assert pending["cmd"] == "unlock"
    relay.report_result("SUBURBAN", pending["cmdId"], True, "unlocked")

    assert (await (await submit).json())["ok"] is True


@pytest.mark.asyncio
async def test_unauthorized_caller_is_rejected_without_touching_relay(harness):
    client, relay, _, notifier = harness

    response = await client.post(
        "/command",
        json={"deviceId": "SUBURBAN", "action": "start", "password": "wrong"},
    )

    assert response.status == 403
    assert await response.json() == {"ok": False, "error": "Forbidden"}
    assert relay.fetch_next("SUBURBAN") is None
    assert notifier.messages == []


@pytest.mark.asyncio
async def test_command_requires_device_and_action(harness):
    client, relay, _, _ = harness

    response = await client.post("/command", json={"password": ADMIN, "action": "start"})

    assert response.status == 400
    assert relay.stats()["waitingCallers"] == 0


@pytest.mark.asyncio
async def test_malformed_body_is_a_bad_request(harness):
    client, _, _, _ = harness

    response = await client.post(
        "/command",
        data=b"{not json",
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {ADMIN}",
        },
    )

    assert response.status == 400


@pytest.mark.asyncio
async def test_device_routes_require_token(harness):
    client, _, _, _ = harness

    next_response = await client.get("/device/next", params={"deviceId": "SUBURBAN"})
    result_response = await client.post(
        "/device/result",
        json={"deviceId": "SUBURBAN", "cmdId": "x"},
        headers={"Authorization": "Bearer nope"},
    )

    assert next_response.status == 401
    assert result_response.status == 401
    assert await next_response.json() == {"ok": False, "error": "unauthorized"}


@pytest.mark.asyncio
async def test_device_next_requires_device_id(harness):
    client, _, _, _ = harness

    response = await client.get("/device/next", headers=DEVICE_HEADERS)

    assert response.status == 400
    assert await response.json() == {"cmd": None, "error": "Missing deviceId"}


@pytest.mark.asyncio
async def test_device_result_requires_identifiers(harness):
    client, _, _, _ = harness

    response = await client.post(
        "/device/result", json={"deviceId": "SUBURBAN"}, headers=DEVICE_HEADERS
    )

    assert response.status == 400


@pytest.mark.asyncio
async def test_short_poll_without_command_returns_null(harness):
    client, _, _, _ = harness

    response = await client.get(
        "/device/next", params={"deviceId": "SUBURBAN"}, headers=DEVICE_HEADERS
    )

    assert response.status == 200
    assert await response.json() == {"cmd": None}


@pytest.mark.asyncio
async def test_long_poll_is_answered_when_command_arrives(harness):
    client, relay, _, _ = harness
    loop = asyncio.get_running_loop()

    poll = asyncio.ensure_future(
        client.get(
            "/device/next",
            params={"deviceId": "SUBURBAN", "wait": "1"},
            headers=DEVICE_HEADERS,
        )
    )
    for _ in range(100):
        if relay.stats()["longPollWaiters"]:
            break
        await asyncio.sleep(0.01)

    started = loop.time()
    submit = asyncio.ensure_future(
        client.post("/car/start", json={"password": ADMIN})
    )
    response = await asyncio.wait_for(poll, timeout=1.5)
    payload = await response.json()

    assert loop.time() - started < 1.0
    assert payload["cmd"] == "start"

    await client.post(
        "/device/result",
        json={"deviceId": "SUBURBAN", "cmdId": payload["cmdId"], "ok": 1},
        headers=DEVICE_HEADERS,
    )
    assert await (await submit).json() == {"ok": True, "message": ""}


@pytest.mark.asyncio
async def test_stale_result_is_acknowledged(harness):
    client, _, _, _ = harness

    response = await client.post(
        "/device/result",
        json={"deviceId": "SUBURBAN", "cmdId": "gone", "ok": True},
        headers=DEVICE_HEADERS,
    )

    assert response.status == 200
    assert await response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_ignition_state_is_recorded_and_served(harness):
    client, _, sensors, _ = harness

    status = await client.get("/car/status")
    assert await status.json() == {"value": "unknown", "updatedAt": None}

    await client.get(
        "/device/next",
        params={"deviceId": "SUBURBAN", "carOn": "1"},
        headers=DEVICE_HEADERS,
    )
    payload = await (await client.get("/car/status")).json()
    assert payload["value"] == "on"
    assert payload["metadata"]["source"] == "esp32-cellular"

    await client.post(
        "/device/result",
        json={"deviceId": "SUBURBAN", "cmdId": "x", "carOn": False},
        headers=DEVICE_HEADERS,
    )
    assert sensors.get("vehicle-suburban").value == "off"


@pytest.mark.asyncio
async def test_health_reports_relay_stats(harness):
    client, _, _, _ = harness

    response = await client.get("/healthz")
    payload = await response.json()

    assert response.status == 200
    assert payload["status"] == "ok"
    assert payload["relay"] == {
        "pendingCommands": 0,
        "waitingCallers": 0,
        "longPollWaiters": 0,
    }


@pytest.mark.asyncio
async def test_submit_after_shutdown_is_unavailable(harness):
    client, relay, _, notifier = harness
    relay.shutdown()

    response = await client.post("/car/start", json={"password": ADMIN})

    assert response.status == 503
    health = await client.get("/healthz")
    assert health.status == 503
    assert notifier.messages == []


@pytest.mark.asyncio
async def test_rejected_submission_sends_no_notification():
    relay = CommandRelay(
        command_timeout=2.0,
        long_poll_max=2.0,
        overwrite_policy=OverwritePolicy.REJECT,
    )
    notifier = _RecordingNotifier()
    client = await _start_client(relay, SensorStore(), notifier)
    try:
        first = asyncio.ensure_future(
            client.post("/car/lock", json={"password": ADMIN})
        )
        pending = await _poll_until_command(client)

        second = await client.post("/car/unlock", json={"password": ADMIN})
        payload = await second.json()
        assert payload["ok"] is False
        assert payload["busy"] is True
        assert notifier.messages == [("Car command: lock", "Suburban")]

        relay.report_result("SUBURBAN", pending["cmdId"], True, "locked")
        assert (await (await first).json())["ok"] is True
    finally:
        relay.shutdown()
        await client.close()


@pytest.mark.asyncio
async def test_notification_title_names_non_default_device(harness):
    client, relay, _, notifier = harness

    submit = asyncio.ensure_future(
        client.post(
            "/command",
            json={"deviceId": "TRUCK", "action": "start", "password": ADMIN},
        )
    )
    pending = await _poll_until_command(client, "TRUCK")
    relay.report_result("TRUCK", pending["cmdId"], True, "running")
    await submit

    assert notifier.messages == [("Car command: start", "Truck")]
