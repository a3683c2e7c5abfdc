"""Per-client poll cursors.

Each polling client is identified by an opaque id and remembers the time of
its last poll, so a poll only returns history newer than that. Browser
clients mint a fresh id per session, so the store is bounded both by count
(least recently polled evicted first) and by idle age.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from cosmic_broadcast.metrics import TRACKED_CLIENTS

logger = logging.getLogger(__name__)

DEFAULT_MAX_CLIENTS = 10_000
DEFAULT_MAX_AGE = timedelta(hours=1)


class PollCursorStore:
    """Bounded map from client id to last-poll time."""

    def __init__(
        self,
        *,
        max_clients: int = DEFAULT_MAX_CLIENTS,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            max_clients: Maximum number of cursors kept.
            max_age: Cursors not touched for this long are dropped.
            clock: Time source returning aware UTC datetimes.
        """
        if max_clients < 1:
            raise ValueError("max_clients must be at least 1")
        self.max_clients = max_clients
        self.max_age = max_age
        self._clock = clock or (lambda: datetime.now(UTC))
        self._cursors: OrderedDict[str, datetime] = OrderedDict()

    def __len__(self) -> int:
        return len(self._cursors)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._cursors

    def get(self, client_id: str) -> datetime | None:
        """Return the stored cursor for a client, if any."""
        return self._cursors.get(client_id)

    def touch(self, client_id: str, at: datetime | None = None) -> datetime:
        """Set a client's cursor (default: now) and apply eviction.

        Returns:
            The stored cursor time.
        """
        now = at or self._clock()
        self._cursors[client_id] = now
        self._cursors.move_to_end(client_id)
        self._evict(now)
        TRACKED_CLIENTS.set(len(self._cursors))
        return now

    def _evict(self, now: datetime) -> None:
        cutoff = now - self.max_age
        evicted = 0

        # Entries are ordered by last touch, so stale ones sit at the front
        while self._cursors:
            client_id, last_poll = next(iter(self._cursors.items()))
            if last_poll >= cutoff and len(self._cursors) <= self.max_clients:
                break
            del self._cursors[client_id]
            evicted += 1

        if evicted:
            logger.debug("Evicted %d poll cursors", evicted)

    def clear(self) -> None:
        """Forget every cursor."""
        self._cursors.clear()
        TRACKED_CLIENTS.set(0)
