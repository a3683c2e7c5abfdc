"""Data models for the broadcast module."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any, Literal

from cosmic_broadcast.detector.models import SpaceWeatherEvent
from cosmic_broadcast.telemetry.models import Snapshot, format_timestamp

UserAction = Literal["dismissed", "expanded", "clicked"]


class BroadcastType(str, Enum):
    """Channels a broadcast message is published on."""

    WEATHER_UPDATE = "WEATHER_UPDATE"
    COSMIC_EVENT = "COSMIC_EVENT"
    DJ_ANNOUNCEMENT = "DJ_ANNOUNCEMENT"
    SYSTEM = "SYSTEM"
    ALERT = "ALERT"
    SCHEDULED = "SCHEDULED"


class BroadcastPriority(IntEnum):
    """Delivery urgency. LOW is reserved for system-internal messages."""

    LOW = 0
    NORMAL = 1
    HIGH = 2
    URGENT = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, value: Any) -> BroadcastPriority:
        """Parse an ordinal (0-4) or a case-insensitive name.

        Raises:
            ValueError: If the value is neither.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        if isinstance(value, str):
            name = value.strip().upper()
            if name in cls.__members__:
                return cls[name]
            if name.isdigit():
                return cls(int(name))
        raise ValueError(f"Invalid broadcast priority: {value!r}")


class BroadcastTone(str, Enum):
    """Presentation hint, independent of priority."""

    NEUTRAL = "NEUTRAL"
    POSITIVE = "POSITIVE"
    WARNING = "WARNING"
    DANGER = "DANGER"
    CINEMATIC = "CINEMATIC"


@dataclass
class BroadcastMessage:
    """A ranked, time-boxed notification.

    Attributes:
        id: Unique broadcast ID.
        type: Channel the message belongs to.
        priority: Delivery urgency.
        tone: Visual/audio tone.
        headline: Short headline.
        content: Message body.
        timestamp: When the message was created.
        ttl: Display time in milliseconds, always positive.
        event: Associated detector event, if any.
        snapshot: Associated telemetry snapshot, if any.
        icon: Icon identifier.
        acknowledged: Whether the message was acknowledged.
        has_audio: Signals that an audio collaborator should speak `content`.
        tags: Free-form tags for filtering.
    """

    id: str
    type: BroadcastType
    priority: BroadcastPriority
    tone: BroadcastTone
    headline: str
    content: str
    timestamp: datetime
    ttl: int
    event: SpaceWeatherEvent | None = None
    snapshot: Snapshot | None = None
    icon: str = "📡"
    acknowledged: bool = False
    has_audio: bool = False
    tags: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.ttl <= 0:
            raise ValueError(f"Broadcast ttl must be positive, got {self.ttl}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase wire form."""
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "priority": int(self.priority),
            "tone": self.tone.value,
            "headline": self.headline,
            "content": self.content,
            "timestamp": format_timestamp(self.timestamp),
            "ttl": self.ttl,
            "icon": self.icon,
            "acknowledged": self.acknowledged,
            "hasAudio": self.has_audio,
            "tags": list(self.tags),
        }
        if self.event is not None:
            data["event"] = self.event.to_dict()
        if self.snapshot is not None:
            data["snapshot"] = self.snapshot.to_dict()
        return data


@dataclass
class BroadcastHistoryEntry:
    """A dispatched message as recorded in history."""

    broadcast: BroadcastMessage
    received_at: datetime
    displayed_for: int
    user_action: UserAction | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase wire form."""
        data: dict[str, Any] = {
            "broadcast": self.broadcast.to_dict(),
            "receivedAt": format_timestamp(self.received_at),
            "displayedFor": self.displayed_for,
        }
        if self.user_action is not None:
            data["userAction"] = self.user_action
        return data


@dataclass(frozen=True)
class BroadcastStats:
    """Counters describing bus activity."""

    total_received: int = 0
    alert_count: int = 0
    event_count: int = 0
    last_broadcast_at: datetime | None = None
    uptime_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase wire form."""
        return {
            "totalReceived": self.total_received,
            "alertCount": self.alert_count,
            "eventCount": self.event_count,
            "lastBroadcastAt": format_timestamp(self.last_broadcast_at),
            "uptime": self.uptime_ms,
        }


DEFAULT_CHANNELS: tuple[BroadcastType, ...] = (
    BroadcastType.WEATHER_UPDATE,
    BroadcastType.COSMIC_EVENT,
    BroadcastType.DJ_ANNOUNCEMENT,
    BroadcastType.ALERT,
)


@dataclass(frozen=True)
class BroadcastConfig:
    """Admission and retention policy for the broadcast bus.

    Attributes:
        enabled: Master switch; when False every admission is rejected.
        max_history_size: Capacity of the history ring buffer.
        polling_interval_ms: Suggested client polling interval.
        auto_acknowledge_delay_ms: Delay before auto-acknowledge (0 = manual).
        subscribed_channels: Message types allowed through admission.
        min_display_priority: Lowest priority admitted.
        enable_audio: Whether audio cues are wanted downstream.
        auto_dismiss_on_ttl: Clear the current message once its TTL elapses.
    """

    enabled: bool = True
    max_history_size: int = 50
    polling_interval_ms: int = 30_000
    auto_acknowledge_delay_ms: int = 10_000
    subscribed_channels: tuple[BroadcastType, ...] = DEFAULT_CHANNELS
    min_display_priority: BroadcastPriority = BroadcastPriority.NORMAL
    enable_audio: bool = True
    auto_dismiss_on_ttl: bool = True

    def updated(self, **changes: Any) -> BroadcastConfig:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


def utc_now() -> datetime:
    """Return the current aware UTC time."""
    return datetime.now(UTC)
