"""Broadcast layer - Prioritized, time-boxed message dissemination."""

from cosmic_broadcast.broadcast.history import BroadcastHistory
from cosmic_broadcast.broadcast.models import (
    BroadcastConfig,
    BroadcastHistoryEntry,
    BroadcastMessage,
    BroadcastPriority,
    BroadcastStats,
    BroadcastTone,
    BroadcastType,
)
from cosmic_broadcast.broadcast.service import (
    BroadcastListener,
    BroadcastService,
    LoopScheduler,
    Scheduler,
)
from cosmic_broadcast.broadcast.severity import (
    calculate_ttl,
    severity_to_priority,
    severity_to_tone,
)

__all__ = [
    "BroadcastConfig",
    "BroadcastHistory",
    "BroadcastHistoryEntry",
    "BroadcastListener",
    "BroadcastMessage",
    "BroadcastPriority",
    "BroadcastService",
    "BroadcastStats",
    "BroadcastTone",
    "BroadcastType",
    "LoopScheduler",
    "Scheduler",
    "calculate_ttl",
    "severity_to_priority",
    "severity_to_tone",
]
