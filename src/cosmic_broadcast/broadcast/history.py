"""Bounded broadcast history.

Dispatched messages are recorded in a fixed-capacity ring buffer. When the
buffer is full the oldest entry is evicted first.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator

from cosmic_broadcast.broadcast.models import BroadcastHistoryEntry, BroadcastType
from cosmic_broadcast.metrics import HISTORY_SIZE

logger = logging.getLogger(__name__)


class BroadcastHistory:
    """FIFO-evicting history of dispatched broadcasts.

    Entries are stored oldest first; read accessors return them most recent
    first.
    """

    def __init__(self, max_size: int = 50) -> None:
        """Initialize the history.

        Args:
            max_size: Maximum number of entries retained.
        """
        if max_size < 1:
            raise ValueError("History size must be at least 1")
        self._entries: deque[BroadcastHistoryEntry] = deque(maxlen=max_size)

    @property
    def max_size(self) -> int:
        """Return the capacity of the buffer."""
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[BroadcastHistoryEntry]:
        return reversed(self._entries)

    def resize(self, max_size: int) -> None:
        """Change capacity, keeping the most recent entries."""
        if max_size < 1:
            raise ValueError("History size must be at least 1")
        if max_size == self.max_size:
            return
        self._entries = deque(self._entries, maxlen=max_size)
        HISTORY_SIZE.set(len(self._entries))
        logger.debug("History resized to %d entries", max_size)

    def append(self, entry: BroadcastHistoryEntry) -> None:
        """Record an entry, evicting the oldest when at capacity."""
        if len(self._entries) == self.max_size:
            evicted = self._entries[0]
            logger.debug("Evicting broadcast %s from history", evicted.broadcast.id)
        self._entries.append(entry)
        HISTORY_SIZE.set(len(self._entries))

    def recent(self, limit: int | None = None) -> list[BroadcastHistoryEntry]:
        """Return up to ``limit`` entries, most recent first."""
        entries = list(reversed(self._entries))
        return entries if limit is None else entries[: max(limit, 0)]

    def recent_by_type(
        self, broadcast_type: BroadcastType, limit: int = 5
    ) -> list[BroadcastHistoryEntry]:
        """Return up to ``limit`` entries of one type, most recent first."""
        matches = [e for e in reversed(self._entries) if e.broadcast.type == broadcast_type]
        return matches[: max(limit, 0)]

    def find(self, broadcast_id: str) -> BroadcastHistoryEntry | None:
        """Find the entry for a broadcast id."""
        for entry in self._entries:
            if entry.broadcast.id == broadcast_id:
                return entry
        return None

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()
        HISTORY_SIZE.set(0)
