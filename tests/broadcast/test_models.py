"""Tests for broadcast data models."""

from datetime import UTC, datetime

import pytest

from cosmic_broadcast.broadcast.models import (
    BroadcastConfig,
    BroadcastHistoryEntry,
    BroadcastMessage,
    BroadcastPriority,
    BroadcastStats,
    BroadcastTone,
    BroadcastType,
)

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def message() -> BroadcastMessage:
    return BroadcastMessage(
        id="bc-1",
        type=BroadcastType.ALERT,
        priority=BroadcastPriority.URGENT,
        tone=BroadcastTone.DANGER,
        headline="⚠️ ALERT: Grid advisory",
        content="Expect HF radio blackouts",
        timestamp=NOW,
        ttl=30_000,
        has_audio=True,
        tags=["alert", "SEVERE"],
    )


class TestBroadcastPriority:
    """Tests for priority parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (0, BroadcastPriority.LOW),
            (4, BroadcastPriority.CRITICAL),
            ("urgent", BroadcastPriority.URGENT),
            ("HIGH", BroadcastPriority.HIGH),
            ("2", BroadcastPriority.HIGH),
            (BroadcastPriority.NORMAL, BroadcastPriority.NORMAL),
        ],
    )
    def test_parse(self, value: object, expected: BroadcastPriority) -> None:
        assert BroadcastPriority.parse(value) == expected

    @pytest.mark.parametrize("value", [5, -1, "loud", True, None, 2.5])
    def test_parse_invalid(self, value: object) -> None:
        with pytest.raises(ValueError):
            BroadcastPriority.parse(value)


class TestBroadcastMessage:
    """Tests for BroadcastMessage."""

    def test_ttl_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="ttl"):
            BroadcastMessage(
                id="bc-0",
                type=BroadcastType.SYSTEM,
                priority=BroadcastPriority.LOW,
                tone=BroadcastTone.NEUTRAL,
                headline="h",
                content="c",
                timestamp=NOW,
                ttl=0,
            )

    def test_to_dict(self, message: BroadcastMessage) -> None:
        data = message.to_dict()

        assert data["id"] == "bc-1"
        assert data["type"] == "ALERT"
        assert data["priority"] == 3
        assert data["tone"] == "DANGER"
        assert data["timestamp"] == "2024-05-10T12:00:00Z"
        assert data["ttl"] == 30_000
        assert data["hasAudio"] is True
        assert data["acknowledged"] is False
        assert data["tags"] == ["alert", "SEVERE"]
        assert "event" not in data
        assert "snapshot" not in data


class TestBroadcastHistoryEntry:
    """Tests for BroadcastHistoryEntry."""

    def test_to_dict(self, message: BroadcastMessage) -> None:
        entry = BroadcastHistoryEntry(broadcast=message, received_at=NOW, displayed_for=30_000)

        data = entry.to_dict()

        assert data["broadcast"]["id"] == "bc-1"
        assert data["receivedAt"] == "2024-05-10T12:00:00Z"
        assert data["displayedFor"] == 30_000
        assert "userAction" not in data


class TestBroadcastStats:
    """Tests for BroadcastStats."""

    def test_to_dict(self) -> None:
        stats = BroadcastStats(total_received=3, alert_count=1, event_count=2, uptime_ms=1500)

        assert stats.to_dict() == {
            "totalReceived": 3,
            "alertCount": 1,
            "eventCount": 2,
            "lastBroadcastAt": None,
            "uptime": 1500,
        }


class TestBroadcastConfig:
    """Tests for BroadcastConfig."""

    def test_defaults(self) -> None:
        config = BroadcastConfig()

        assert config.enabled is True
        assert config.max_history_size == 50
        assert config.auto_acknowledge_delay_ms == 10_000
        assert config.min_display_priority == BroadcastPriority.NORMAL
        assert BroadcastType.SYSTEM not in config.subscribed_channels

    def test_updated(self) -> None:
        config = BroadcastConfig().updated(enabled=False)
        assert config.enabled is False
