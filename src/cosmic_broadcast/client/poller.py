"""Polling client for the broadcast dissemination API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from cosmic_broadcast.telemetry.models import parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_SEEN = 500
DEFAULT_TIMEOUT = 10.0
BROADCAST_PATH = "/api/broadcast"

BroadcastCallback = Callable[[dict[str, Any]], None]


def generate_client_id() -> str:
    """Return a random client id."""
    return f"client_{secrets.token_hex(6)}"


def _priority_key(broadcast: dict[str, Any]) -> int:
    priority = broadcast.get("priority")
    if isinstance(priority, int) and not isinstance(priority, bool):
        return priority
    return 0


@dataclass
class PollerStats:
    """Counters for a poller's lifetime."""

    polls: int = 0
    errors: int = 0
    received: int = 0
    duplicates: int = 0


class BroadcastPoller:
    """Incrementally polls ``GET /api/broadcast`` and surfaces new messages.

    The server keeps a cursor per client id; the poller additionally sends
    ``since`` (the server time of its last successful poll) and remembers a
    bounded set of broadcast ids so a message is delivered at most once
    even if cursors are lost on the server.

    Example:
        ```python
        poller = BroadcastPoller(
            "http://localhost:8080",
            on_broadcast=lambda msg: print(msg["headline"]),
        )
        await poller.start()
        ...
        await poller.stop()
        ```
    """

    def __init__(
        self,
        base_url: str,
        *,
        client_id: str | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_broadcast: BroadcastCallback | None = None,
        max_seen: int = DEFAULT_MAX_SEEN,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            base_url: Root URL of the dissemination API.
            client_id: Stable client id (random when omitted).
            poll_interval: Fallback seconds between polls.
            on_broadcast: Called with each new broadcast dictionary.
            max_seen: Number of broadcast ids remembered for deduplication.
            timeout: HTTP request timeout in seconds.
            http_client: Preconfigured client; the poller does not close it.
        """
        if max_seen < 1:
            raise ValueError("max_seen must be at least 1")

        self.base_url = base_url.rstrip("/")
        self.client_id = client_id or generate_client_id()
        self.poll_interval = poll_interval
        self.on_broadcast = on_broadcast
        self.max_seen = max_seen
        self.stats = PollerStats()

        self.is_connected = False
        self.last_error: str | None = None
        self.since_ms = 0

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout
        )
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._next_delay = poll_interval
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """Check whether the background loop is active."""
        return self._task is not None and not self._task.done()

    def _remember(self, broadcast_id: str) -> bool:
        """Record an id; return False if it was already seen."""
        if broadcast_id in self._seen:
            return False
        self._seen[broadcast_id] = None
        while len(self._seen) > self.max_seen:
            self._seen.popitem(last=False)
        return True

    async def poll_once(self) -> list[dict[str, Any]]:
        """Fetch and deliver broadcasts newer than the last poll.

        Returns:
            New broadcasts, highest priority first. Empty on error.
        """
        self.stats.polls += 1
        try:
            response = await self._client.get(
                f"{self.base_url}{BROADCAST_PATH}",
                params={"clientId": self.client_id, "since": self.since_ms},
            )
            response.raise_for_status()
            payload = response.json()
            if not isinstance(payload, dict):
                raise ValueError("Unexpected poll response body")
        except (httpx.HTTPError, ValueError) as e:
            self.stats.errors += 1
            self.is_connected = False
            self.last_error = str(e) or type(e).__name__
            self._next_delay = self.poll_interval
            logger.warning("Broadcast poll failed: %s", self.last_error)
            return []

        self.is_connected = True
        self.last_error = None
        self._advance(payload)

        fresh = []
        for broadcast in payload.get("broadcasts") or []:
            if not isinstance(broadcast, dict):
                continue
            broadcast_id = broadcast.get("id")
            if broadcast_id is None or not self._remember(str(broadcast_id)):
                self.stats.duplicates += 1
                continue
            fresh.append(broadcast)

        fresh.sort(key=_priority_key, reverse=True)
        self.stats.received += len(fresh)

        for broadcast in fresh:
            self._deliver(broadcast)
        return fresh

    def _advance(self, payload: dict[str, Any]) -> None:
        server_time = parse_timestamp(payload.get("serverTime")) or datetime.now(UTC)
        self.since_ms = int(server_time.timestamp() * 1000)

        next_poll = payload.get("nextPollIn")
        if isinstance(next_poll, int | float) and next_poll > 0:
            self._next_delay = next_poll / 1000
        else:
            self._next_delay = self.poll_interval

    def _deliver(self, broadcast: dict[str, Any]) -> None:
        if self.on_broadcast is None:
            return
        try:
            self.on_broadcast(broadcast)
        except Exception:
            logger.exception("Error in broadcast callback for %s", broadcast.get("id"))

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                self.stats.errors += 1
                self._next_delay = self.poll_interval
                logger.exception("Unexpected error while polling broadcasts")
            await asyncio.sleep(self._next_delay)

    async def start(self) -> None:
        """Start the background polling loop."""
        if self.is_running:
            logger.warning("Broadcast poller already running")
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Broadcast poller started as %s", self.client_id)

    async def stop(self) -> None:
        """Stop polling and release the HTTP client if owned."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._owns_client:
            await self._client.aclose()
        self.is_connected = False
        logger.info("Broadcast poller stopped")
