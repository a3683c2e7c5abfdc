"""Tests for detector data models."""

from datetime import UTC, datetime, timedelta

import pytest

from cosmic_broadcast.detector.models import (
    DetectionConfig,
    EventSeverity,
    EventType,
    SolarWindEvent,
)
from cosmic_broadcast.telemetry.models import Snapshot


class TestEventSeverity:
    """Tests for the severity scale."""

    def test_total_order(self) -> None:
        ordered = [
            EventSeverity.LOW,
            EventSeverity.MODERATE,
            EventSeverity.HIGH,
            EventSeverity.SEVERE,
            EventSeverity.EXTREME,
        ]
        assert sorted(reversed(ordered)) == ordered
        assert max(ordered) == EventSeverity.EXTREME
        assert EventSeverity.HIGH >= EventSeverity.HIGH
        assert EventSeverity.MODERATE < EventSeverity.SEVERE

    def test_rank_and_weight(self) -> None:
        assert EventSeverity.LOW.rank == 0
        assert EventSeverity.EXTREME.rank == 4
        assert EventSeverity.LOW.weight == pytest.approx(0.2)
        assert EventSeverity.EXTREME.weight == pytest.approx(1.0)


class TestSpaceWeatherEvent:
    """Tests for event serialization."""

    @pytest.fixture
    def event(self) -> SolarWindEvent:
        return SolarWindEvent(
            id="evt-1",
            type=EventType.HIGH_SOLAR_WIND,
            severity=EventSeverity.HIGH,
            detected_at=datetime(2024, 5, 10, 17, 0, tzinfo=UTC),
            description="High solar wind speed detected (650 km/s)",
            snapshot=Snapshot(),
            speed=650.0,
        )

    def test_to_dict(self, event: SolarWindEvent) -> None:
        data = event.to_dict()

        assert data["id"] == "evt-1"
        assert data["type"] == "HIGH_SOLAR_WIND"
        assert data["severity"] == "HIGH"
        assert data["detectedAt"] == "2024-05-10T17:00:00Z"
        assert data["speed"] == 650.0
        assert data["announced"] is False

    def test_mark_announced(self, event: SolarWindEvent) -> None:
        event.mark_announced()
        assert event.announced is True
        assert event.to_dict()["announced"] is True


class TestDetectionConfig:
    """Tests for DetectionConfig."""

    def test_defaults(self) -> None:
        config = DetectionConfig()

        assert config.flare_classes_to_detect == ("M", "X")
        assert config.min_kp_for_storm == 5.0
        assert config.min_kp_for_severe_storm == 7.0
        assert config.min_speed_for_high_wind == 600.0
        assert config.min_speed_for_extreme_wind == 700.0
        assert config.flare_dedup_window == timedelta(hours=48)
        assert config.suppress_compound_constituents is False

    def test_updated_returns_copy(self) -> None:
        config = DetectionConfig()
        changed = config.updated(min_kp_for_storm=4.0)

        assert changed.min_kp_for_storm == 4.0
        assert config.min_kp_for_storm == 5.0
