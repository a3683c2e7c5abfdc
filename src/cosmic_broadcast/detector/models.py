"""Data models for the detector module."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from cosmic_broadcast.telemetry.models import Snapshot, SolarFlare, format_timestamp


class EventType(str, Enum):
    """Types of detectable space-weather events."""

    MAJOR_FLARE = "MAJOR_FLARE"
    GEOMAGNETIC_STORM = "GEOMAGNETIC_STORM"
    SEVERE_STORM = "SEVERE_STORM"
    HIGH_SOLAR_WIND = "HIGH_SOLAR_WIND"
    EXTREME_SOLAR_WIND = "EXTREME_SOLAR_WIND"
    COMPOUND_EVENT = "COMPOUND_EVENT"


class EventSeverity(str, Enum):
    """Five-level, totally ordered severity scale."""

    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    SEVERE = "SEVERE"
    EXTREME = "EXTREME"

    @property
    def rank(self) -> int:
        """Return the ordinal position (LOW=0 .. EXTREME=4)."""
        return _SEVERITY_ORDER.index(self)

    @property
    def weight(self) -> float:
        """Return the intensity weight used for compound events."""
        return (self.rank + 1) / len(_SEVERITY_ORDER)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, EventSeverity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, EventSeverity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, EventSeverity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, EventSeverity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_ORDER = tuple(EventSeverity)


@dataclass(kw_only=True)
class SpaceWeatherEvent:
    """A detector-classified occurrence derived from a snapshot.

    Attributes:
        id: Unique event identifier.
        type: Kind of event.
        severity: Severity level.
        detected_at: When the event was detected.
        description: Human-readable description.
        snapshot: The snapshot that triggered the event.
        announced: Set by a downstream announcer once spoken.
    """

    id: str
    type: EventType
    severity: EventSeverity
    detected_at: datetime
    description: str
    snapshot: Snapshot
    announced: bool = False

    def mark_announced(self) -> None:
        """Record that the event has been announced."""
        self.announced = True

    def _extra_fields(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase wire form."""
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "detectedAt": format_timestamp(self.detected_at),
            "description": self.description,
            "snapshot": self.snapshot.to_dict(),
            "announced": self.announced,
        }
        data.update(self._extra_fields())
        return data


@dataclass(kw_only=True)
class MajorFlareEvent(SpaceWeatherEvent):
    """M or X class flare."""

    flare: SolarFlare

    def _extra_fields(self) -> dict[str, Any]:
        return {"flare": self.flare.to_dict()}


@dataclass(kw_only=True)
class GeomagneticStormEvent(SpaceWeatherEvent):
    """Geomagnetic storm (GEOMAGNETIC_STORM or SEVERE_STORM)."""

    kp_index: float
    storm_level: str

    def _extra_fields(self) -> dict[str, Any]:
        return {"kpIndex": self.kp_index, "stormLevel": self.storm_level}


@dataclass(kw_only=True)
class SolarWindEvent(SpaceWeatherEvent):
    """High or extreme solar wind speed."""

    speed: float

    def _extra_fields(self) -> dict[str, Any]:
        return {"speed": self.speed}


@dataclass(kw_only=True)
class CompoundEvent(SpaceWeatherEvent):
    """Several simultaneous conditions within one snapshot."""

    sub_events: tuple[SpaceWeatherEvent, ...]
    intensity: float

    def _extra_fields(self) -> dict[str, Any]:
        return {
            "subEvents": [event.to_dict() for event in self.sub_events],
            "intensity": self.intensity,
        }


@dataclass(frozen=True)
class DetectionConfig:
    """Thresholds and policies for the event detector.

    Attributes:
        flare_classes_to_detect: Flare class letters that produce events.
        min_kp_for_storm: Kp at which a geomagnetic storm is reported.
        min_kp_for_severe_storm: Kp at which the storm becomes SEVERE_STORM.
        min_kp_for_extreme_storm: Kp at which a severe storm is EXTREME.
        min_speed_for_high_wind: Solar wind speed (km/s) for HIGH_SOLAR_WIND.
        min_speed_for_extreme_wind: Solar wind speed for EXTREME_SOLAR_WIND.
        detect_compound_events: Emit a COMPOUND_EVENT when rules coincide.
        suppress_compound_constituents: Return only the compound event, not
            the individual events it references.
        flare_dedup_window: How long an emitted flare id is remembered.
    """

    flare_classes_to_detect: tuple[str, ...] = ("M", "X")
    min_kp_for_storm: float = 5.0
    min_kp_for_severe_storm: float = 7.0
    min_kp_for_extreme_storm: float = 8.0
    min_speed_for_high_wind: float = 600.0
    min_speed_for_extreme_wind: float = 700.0
    detect_compound_events: bool = True
    suppress_compound_constituents: bool = False
    flare_dedup_window: timedelta = field(default=timedelta(hours=48))

    def updated(self, **changes: Any) -> DetectionConfig:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
