"""HTTP dissemination API backed by the broadcast service.

Clients that cannot hold persistent connections poll ``GET /api/broadcast``
with a client id; each poll returns the history entries received since that
client's previous poll. ``POST /api/broadcast`` injects manual messages.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from aiohttp import web
from prometheus_client import generate_latest

from cosmic_broadcast.api.cursors import PollCursorStore
from cosmic_broadcast.broadcast.models import BroadcastMessage, BroadcastPriority
from cosmic_broadcast.broadcast.service import BroadcastService
from cosmic_broadcast.detector.events import EventDetector
from cosmic_broadcast.detector.models import SpaceWeatherEvent
from cosmic_broadcast.metrics import POLL_REQUESTS
from cosmic_broadcast.telemetry.models import format_timestamp

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_HTTP_HOST = "0.0.0.0"
DEFAULT_HTTP_PORT = 8080
DEFAULT_NEXT_POLL_MS = 5_000
DEFAULT_HISTORY_WINDOW = 20
DEFAULT_CLIENT_ID = "default"
HEALTH_RECENT_EVENTS = 5

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Access-Control-Allow-Origin": "*",
}

CORS_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _json(body: Any, status: int = 200) -> web.Response:
    return web.json_response(body, status=status, headers=NO_CACHE_HEADERS)


def _event_summary(event: SpaceWeatherEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "type": event.type.value,
        "severity": event.severity.value,
        "detectedAt": format_timestamp(event.detected_at),
        "description": event.description,
        "announced": event.announced,
    }


class BroadcastAPI:
    """aiohttp application exposing incremental polling and injection.

    Routes:
        GET /api/broadcast: new broadcasts for ``clientId`` since its cursor.
        POST /api/broadcast: create a system, alert or announcer message.
        OPTIONS /api/broadcast: CORS preflight.
        GET /health: bus statistics, the current broadcast and recent events.
        GET /metrics: Prometheus exposition.

    Example:
        ```python
        service = BroadcastService()
        api = BroadcastAPI(service)
        await api.start(port=8080)
        ```
    """

    def __init__(
        self,
        service: BroadcastService,
        *,
        detector: EventDetector | None = None,
        cursors: PollCursorStore | None = None,
        clock: Callable[[], datetime] | None = None,
        next_poll_ms: int = DEFAULT_NEXT_POLL_MS,
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ) -> None:
        """Initialize the API.

        Args:
            service: Broadcast service shared with the producers.
            detector: Detector whose recent events are reported on /health.
            cursors: Per-client cursor store.
            clock: Time source returning aware UTC datetimes.
            next_poll_ms: Poll interval suggested to clients.
            history_window: Most recent history entries considered per poll.
        """
        self.service = service
        self.detector = detector
        self._clock = clock or (lambda: datetime.now(UTC))
        self.cursors = cursors or PollCursorStore(clock=self._clock)
        self.next_poll_ms = next_poll_ms
        self.history_window = history_window

        self._runner: web.AppRunner | None = None

    # Handlers

    async def _handle_poll(self, request: web.Request) -> web.Response:
        """Handle GET /api/broadcast."""
        client_id = request.query.get("clientId") or DEFAULT_CLIENT_ID
        try:
            since = EPOCH + timedelta(milliseconds=int(request.query.get("since") or 0))
        except (ValueError, OverflowError):
            return _json({"error": "Query parameter 'since' must be epoch milliseconds"}, 400)

        try:
            now = self._clock()
            last_seen = max(self.cursors.get(client_id) or EPOCH, since)

            broadcasts = [
                entry.broadcast.to_dict()
                for entry in self.service.get_history(self.history_window)
                if entry.received_at > last_seen
            ]
            self.cursors.touch(client_id, now)
            POLL_REQUESTS.inc()

            return _json(
                {
                    "broadcasts": broadcasts,
                    "nextPollIn": self.next_poll_ms,
                    "serverTime": format_timestamp(now),
                    "connectionId": client_id,
                }
            )
        except Exception:
            logger.exception("Broadcast poll failed for client %s", client_id)
            return _json({"error": "Failed to fetch broadcasts"}, 500)

    async def _handle_create(self, request: web.Request) -> web.Response:
        """Handle POST /api/broadcast."""
        try:
            body = await request.json()
        except ValueError:
            return _json({"error": "Request body must be valid JSON"}, 400)
        if not isinstance(body, dict):
            return _json({"error": "Request body must be a JSON object"}, 400)

        headline = body.get("headline")
        content = body.get("content")
        if not headline or not content:
            return _json({"error": "Missing required fields: headline, content"}, 400)

        kind = body.get("type") or "system"
        priority = BroadcastPriority.LOW
        if kind == "system" and body.get("priority") is not None:
            try:
                priority = BroadcastPriority.parse(body["priority"])
            except ValueError as e:
                return _json({"error": str(e)}, 400)

        try:
            message = self._create_message(kind, str(headline), str(content), priority)
            return _json({"success": True, "broadcast": message.to_dict()})
        except Exception:
            logger.exception("Broadcast creation failed")
            return _json({"error": "Failed to create broadcast"}, 500)

    def _create_message(
        self, kind: str, headline: str, content: str, priority: BroadcastPriority
    ) -> BroadcastMessage:
        if kind == "alert":
            return self.service.broadcast_alert(headline, content)
        if kind == "dj":
            return self.service.broadcast_dj_announcement(content)
        if kind != "system":
            logger.debug("Unknown broadcast type %r, sending as system", kind)
        return self.service.broadcast_system(headline, content, priority)

    async def _handle_preflight(self, _request: web.Request) -> web.Response:
        """Handle OPTIONS /api/broadcast."""
        return web.json_response({}, headers=CORS_PREFLIGHT_HEADERS)

    async def _handle_health(self, _request: web.Request) -> web.Response:
        """Handle GET /health."""
        current = self.service.get_current_broadcast()
        body: dict[str, Any] = {
            "status": "ok" if self.service.config.enabled else "disabled",
            "stats": self.service.get_stats().to_dict(),
            "currentBroadcast": current.to_dict() if current else None,
            "pendingCount": self.service.pending_count,
            "trackedClients": len(self.cursors),
        }
        if self.detector is not None:
            body["recentEvents"] = [
                _event_summary(event)
                for event in self.detector.get_recent_events(HEALTH_RECENT_EVENTS)
            ]
        return _json(body)

    async def _handle_metrics(self, _request: web.Request) -> web.Response:
        """Handle GET /metrics (Prometheus format)."""
        return web.Response(
            body=generate_latest(),
            content_type="text/plain",
            charset="utf-8",
        )

    # Server lifecycle

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()
        app.router.add_get("/api/broadcast", self._handle_poll)
        app.router.add_post("/api/broadcast", self._handle_create)
        app.router.add_route("OPTIONS", "/api/broadcast", self._handle_preflight)
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(
        self, host: str = DEFAULT_HTTP_HOST, port: int = DEFAULT_HTTP_PORT
    ) -> None:
        """Start serving on ``host:port``."""
        if self._runner:
            logger.warning("Broadcast API already running")
            return

        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()

        site = web.TCPSite(self._runner, host, port)
        await site.start()

        logger.info("Broadcast API listening on %s:%d", host, port)

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Broadcast API stopped")
