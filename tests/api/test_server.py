"""Tests for the HTTP dissemination API."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from cosmic_broadcast.api.cursors import PollCursorStore
from cosmic_broadcast.api.server import BroadcastAPI
from cosmic_broadcast.broadcast.models import (
    DEFAULT_CHANNELS,
    BroadcastConfig,
    BroadcastPriority,
    BroadcastType,
)
from cosmic_broadcast.broadcast.service import BroadcastService
from cosmic_broadcast.detector.events import EventDetector
from cosmic_broadcast.telemetry.models import Snapshot, SolarWind

BROADCAST_PATH = "/api/broadcast"


class SteppingClock:
    """Shared clock that advances one millisecond per reading."""

    def __init__(self) -> None:
        self.now = datetime(2024, 5, 10, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(milliseconds=1)
        return self.now


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def service(clock: SteppingClock) -> BroadcastService:
    config = BroadcastConfig(
        subscribed_channels=(*DEFAULT_CHANNELS, BroadcastType.SYSTEM),
        min_display_priority=BroadcastPriority.LOW,
        auto_acknowledge_delay_ms=0,
        auto_dismiss_on_ttl=False,
    )
    return BroadcastService(config, clock=clock)


@pytest.fixture
def api(service: BroadcastService, clock: SteppingClock) -> BroadcastAPI:
    return BroadcastAPI(service, cursors=PollCursorStore(clock=clock), clock=clock)


@pytest.fixture
def app(api: BroadcastAPI) -> web.Application:
    return api.create_app()


@pytest.fixture
async def client(app: web.Application) -> AsyncIterator[TestClient]:
    async with TestClient(TestServer(app)) as test_client:
        yield test_client


class TestPoll:
    """Tests for GET /api/broadcast."""

    async def test_empty_poll(self, client: TestClient) -> None:
        resp = await client.get(BROADCAST_PATH)
        assert resp.status == 200

        data = await resp.json()
        assert data["broadcasts"] == []
        assert data["nextPollIn"] == 5000
        assert data["connectionId"] == "default"
        assert data["serverTime"].endswith("Z")

    async def test_cache_and_cors_headers(self, client: TestClient) -> None:
        resp = await client.get(BROADCAST_PATH, params={"clientId": "A"})

        assert resp.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    async def test_alert_delivered_once(
        self, client: TestClient, service: BroadcastService
    ) -> None:
        alert = service.broadcast_alert("X", "Y")

        resp = await client.get(BROADCAST_PATH, params={"clientId": "A", "since": "0"})
        data = await resp.json()

        assert [b["id"] for b in data["broadcasts"]] == [alert.id]
        assert data["broadcasts"][0]["headline"] == "⚠️ ALERT: X"
        assert data["broadcasts"][0]["timestamp"].endswith("Z")
        assert data["nextPollIn"] == 5000
        assert data["connectionId"] == "A"

        resp = await client.get(BROADCAST_PATH, params={"clientId": "A", "since": "0"})
        data = await resp.json()

        assert data["broadcasts"] == []

    async def test_only_newer_entries_returned(
        self, client: TestClient, service: BroadcastService
    ) -> None:
        service.broadcast_system("old", "c")
        await client.get(BROADCAST_PATH, params={"clientId": "A"})

        fresh = service.broadcast_system("new", "c")
        resp = await client.get(BROADCAST_PATH, params={"clientId": "A"})
        data = await resp.json()

        assert [b["id"] for b in data["broadcasts"]] == [fresh.id]

    async def test_cursors_are_per_client(
        self, client: TestClient, service: BroadcastService
    ) -> None:
        alert = service.broadcast_alert("X", "Y")

        await client.get(BROADCAST_PATH, params={"clientId": "A"})
        resp = await client.get(BROADCAST_PATH, params={"clientId": "B"})
        data = await resp.json()

        assert [b["id"] for b in data["broadcasts"]] == [alert.id]

    async def test_since_after_history(
        self, client: TestClient, service: BroadcastService, clock: SteppingClock
    ) -> None:
        service.broadcast_alert("X", "Y")
        since = int((clock.now + timedelta(minutes=1)).timestamp() * 1000)

        resp = await client.get(BROADCAST_PATH, params={"clientId": "A", "since": since})
        data = await resp.json()

        assert data["broadcasts"] == []

    async def test_history_window(
        self, client: TestClient, service: BroadcastService
    ) -> None:
        for i in range(25):
            service.broadcast_system(f"T{i}", "c")

        resp = await client.get(BROADCAST_PATH, params={"clientId": "A"})
        data = await resp.json()

        assert len(data["broadcasts"]) == 20
        assert data["broadcasts"][0]["headline"] == "T24"

    async def test_invalid_since(self, client: TestClient) -> None:
        resp = await client.get(BROADCAST_PATH, params={"since": "yesterday"})

        assert resp.status == 400
        assert "error" in await resp.json()

    async def test_internal_error(self, client: TestClient, service: BroadcastService) -> None:
        with patch.object(service, "get_history", side_effect=RuntimeError("boom")):
            resp = await client.get(BROADCAST_PATH)

        assert resp.status == 500
        assert await resp.json() == {"error": "Failed to fetch broadcasts"}

    async def test_cursor_recorded(self, client: TestClient, api: BroadcastAPI) -> None:
        await client.get(BROADCAST_PATH, params={"clientId": "A"})

        assert "A" in api.cursors


class TestCreate:
    """Tests for POST /api/broadcast."""

    async def test_system_broadcast(
        self, client: TestClient, service: BroadcastService
    ) -> None:
        resp = await client.post(
            BROADCAST_PATH,
            json={"type": "system", "headline": "Maintenance", "content": "Back soon"},
        )
        assert resp.status == 200

        data = await resp.json()
        assert data["success"] is True
        assert data["broadcast"]["type"] == "SYSTEM"
        assert data["broadcast"]["priority"] == 0
        assert data["broadcast"]["ttl"] == 8000
        assert data["broadcast"]["timestamp"].endswith("Z")
        assert service.get_history()[0].broadcast.id == data["broadcast"]["id"]

    async def test_default_type_is_system(self, client: TestClient) -> None:
        resp = await client.post(BROADCAST_PATH, json={"headline": "h", "content": "c"})
        data = await resp.json()

        assert data["broadcast"]["type"] == "SYSTEM"

    @pytest.mark.parametrize(("priority", "expected"), [(2, 2), ("URGENT", 3), ("critical", 4)])
    async def test_system_priority(
        self, client: TestClient, priority: object, expected: int
    ) -> None:
        resp = await client.post(
            BROADCAST_PATH,
            json={"type": "system", "headline": "h", "content": "c", "priority": priority},
        )
        data = await resp.json()

        assert data["broadcast"]["priority"] == expected

    async def test_same_headline_distinct_entries(
        self, client: TestClient, service: BroadcastService
    ) -> None:
        ids = []
        for content in ("first", "second"):
            resp = await client.post(
                BROADCAST_PATH, json={"headline": "Maintenance", "content": content}
            )
            ids.append((await resp.json())["broadcast"]["id"])

        history_ids = [entry.broadcast.id for entry in service.get_history()]
        assert ids[0] != ids[1]
        assert set(ids) <= set(history_ids)
        assert len(history_ids) == 2

    async def test_alert(self, client: TestClient) -> None:
        resp = await client.post(
            BROADCAST_PATH, json={"type": "alert", "headline": "Grid", "content": "c"}
        )
        data = await resp.json()

        assert data["broadcast"]["type"] == "ALERT"
        assert data["broadcast"]["headline"] == "⚠️ ALERT: Grid"
        assert data["broadcast"]["ttl"] == 30_000

    async def test_dj(self, client: TestClient) -> None:
        resp = await client.post(
            BROADCAST_PATH,
            json={"type": "dj", "headline": "ignored", "content": "Good evening, Earth."},
        )
        data = await resp.json()

        assert data["broadcast"]["type"] == "DJ_ANNOUNCEMENT"
        assert data["broadcast"]["content"] == "Good evening, Earth."
        assert data["broadcast"]["tone"] == "CINEMATIC"

    @pytest.mark.parametrize(
        "body",
        [
            {"content": "c"},
            {"headline": "h"},
            {"headline": "", "content": "c"},
        ],
    )
    async def test_missing_fields(self, client: TestClient, body: dict[str, str]) -> None:
        resp = await client.post(BROADCAST_PATH, json=body)

        assert resp.status == 400
        assert await resp.json() == {"error": "Missing required fields: headline, content"}

    async def test_invalid_json(self, client: TestClient) -> None:
        resp = await client.post(
            BROADCAST_PATH, data="{not json", headers={"Content-Type": "application/json"}
        )

        assert resp.status == 400

    async def test_non_object_body(self, client: TestClient) -> None:
        resp = await client.post(BROADCAST_PATH, json=["headline", "content"])

        assert resp.status == 400

    async def test_invalid_priority(self, client: TestClient) -> None:
        resp = await client.post(
            BROADCAST_PATH, json={"headline": "h", "content": "c", "priority": "loud"}
        )

        assert resp.status == 400

    async def test_internal_error(self, client: TestClient, service: BroadcastService) -> None:
        with patch.object(service, "broadcast_system", side_effect=RuntimeError("boom")):
            resp = await client.post(BROADCAST_PATH, json={"headline": "h", "content": "c"})

        assert resp.status == 500
        assert await resp.json() == {"error": "Failed to create broadcast"}


class TestOtherRoutes:
    """Tests for preflight, health and metrics."""

    async def test_preflight(self, client: TestClient) -> None:
        resp = await client.options(BROADCAST_PATH)

        assert resp.status == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert "POST" in resp.headers["Access-Control-Allow-Methods"]
        assert resp.headers["Access-Control-Allow-Headers"] == "Content-Type"

    async def test_health(self, client: TestClient, service: BroadcastService) -> None:
        alert = service.broadcast_alert("X", "Y")

        resp = await client.get("/health")
        data = await resp.json()

        assert resp.status == 200
        assert data["status"] == "ok"
        assert data["stats"]["totalReceived"] == 1
        assert data["currentBroadcast"]["id"] == alert.id
        assert data["pendingCount"] == 0
        assert "recentEvents" not in data

    async def test_health_recent_events(self, service: BroadcastService) -> None:
        detector = EventDetector()
        events = detector.analyze(
            Snapshot(
                timestamp=datetime(2024, 5, 10, 17, 0, tzinfo=UTC),
                solar_wind=SolarWind(speed=650.0),
            )
        )
        api = BroadcastAPI(service, detector=detector)

        async with TestClient(TestServer(api.create_app())) as client:
            resp = await client.get("/health")
            data = await resp.json()

        assert data["recentEvents"] == [
            {
                "id": events[0].id,
                "type": "HIGH_SOLAR_WIND",
                "severity": "HIGH",
                "detectedAt": "2024-05-10T17:00:00Z",
                "description": events[0].description,
                "announced": False,
            }
        ]

    async def test_metrics(self, client: TestClient) -> None:
        await client.get(BROADCAST_PATH)

        resp = await client.get("/metrics")

        assert resp.status == 200
        assert "text/plain" in resp.headers.get("Content-Type", "")
        assert "cosmic_poll_requests_total" in await resp.text()
