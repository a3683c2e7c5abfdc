"""Data models for space-weather telemetry snapshots.

Snapshots arrive from an upstream fetcher in its own JSON shape. Parsing is
tolerant: a missing or malformed value becomes ``None`` so downstream rules
can treat it as absent instead of failing the whole snapshot.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

logger = logging.getLogger(__name__)

DataSource = Literal["live", "cached", "demo"]

_FLARE_CLASS_PATTERN = re.compile(r"^\s*([A-Za-z])\s*([0-9]+(?:\.[0-9]+)?)?")


def parse_float(value: Any) -> float | None:
    """Parse a finite float, returning None for anything else."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string into an aware UTC datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def format_timestamp(value: datetime | None) -> str | None:
    """Format a datetime as ISO-8601 with a trailing Z."""
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class SolarFlare:
    """A solar flare record.

    Attributes:
        id: Upstream flare identifier, used for deduplication.
        flare_class: Full class string, e.g. "X2.1".
        class_type: Class letter ("C", "M" or "X").
        magnitude: Numeric magnitude within the class.
        timestamp: Flare begin time.
        source_region: Active region designation.
        peak_time: Flare peak time.
    """

    id: str | None
    flare_class: str = ""
    class_type: str | None = None
    magnitude: float | None = None
    timestamp: datetime | None = None
    source_region: str = "unknown region"
    peak_time: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "SolarFlare":
        """Create a SolarFlare from an upstream dictionary."""
        data = _mapping(data)
        flare_class = str(data.get("flareClass") or "")
        match = _FLARE_CLASS_PATTERN.match(flare_class)

        class_type = data.get("classType")
        if not isinstance(class_type, str) or not class_type:
            class_type = match.group(1) if match else None
        magnitude = parse_float(data.get("magnitude"))
        if magnitude is None and match and match.group(2):
            magnitude = parse_float(match.group(2))

        flare_id = data.get("id")
        return cls(
            id=str(flare_id) if flare_id not in (None, "") else None,
            flare_class=flare_class,
            class_type=class_type.upper() if class_type else None,
            magnitude=magnitude,
            timestamp=parse_timestamp(data.get("timestamp")),
            source_region=str(data.get("sourceRegion") or "unknown region"),
            peak_time=parse_timestamp(data.get("peakTime")),
        )

    @property
    def label(self) -> str:
        """Return a display label such as "X2.1"."""
        if self.flare_class:
            return self.flare_class
        magnitude = "" if self.magnitude is None else f"{self.magnitude:g}"
        return f"{self.class_type or '?'}{magnitude}"

    def to_dict(self) -> dict[str, object]:
        """Serialize to the upstream dictionary shape."""
        return {
            "id": self.id,
            "flareClass": self.label,
            "classType": self.class_type,
            "magnitude": self.magnitude,
            "timestamp": format_timestamp(self.timestamp),
            "sourceRegion": self.source_region,
            "peakTime": format_timestamp(self.peak_time),
        }


@dataclass(frozen=True)
class SolarWind:
    """Solar wind plasma measurements (speed in km/s, density in p/cm3)."""

    speed: float | None = None
    density: float | None = None
    temperature: float | None = None
    timestamp: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "SolarWind":
        """Create a SolarWind reading from an upstream dictionary."""
        data = _mapping(data)
        return cls(
            speed=parse_float(data.get("speed")),
            density=parse_float(data.get("density")),
            temperature=parse_float(data.get("temperature")),
            timestamp=parse_timestamp(data.get("timestamp")),
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize to the upstream dictionary shape."""
        return {
            "speed": self.speed,
            "density": self.density,
            "temperature": self.temperature,
            "timestamp": format_timestamp(self.timestamp),
        }


@dataclass(frozen=True)
class GeomagneticData:
    """Planetary geomagnetic activity (Kp index on a 0-9 scale)."""

    kp_index: float | None = None
    storm_active: bool = False
    storm_level: str = "None"
    timestamp: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "GeomagneticData":
        """Create GeomagneticData from an upstream dictionary."""
        data = _mapping(data)
        return cls(
            kp_index=parse_float(data.get("kp_index")),
            storm_active=bool(data.get("storm_active", False)),
            storm_level=str(data.get("storm_level") or "None"),
            timestamp=parse_timestamp(data.get("timestamp")),
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize to the upstream dictionary shape."""
        return {
            "kp_index": self.kp_index,
            "storm_active": self.storm_active,
            "storm_level": self.storm_level,
            "timestamp": format_timestamp(self.timestamp),
        }


@dataclass(frozen=True)
class Snapshot:
    """One timestamped space-weather reading produced per poll cycle."""

    timestamp: datetime | None = None
    solar_wind: SolarWind = field(default_factory=SolarWind)
    geomagnetic: GeomagneticData = field(default_factory=GeomagneticData)
    flares: tuple[SolarFlare, ...] = ()
    data_source: DataSource = "live"

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        """Create a Snapshot from the upstream JSON payload.

        Never raises for malformed content; unusable values become None and
        non-dictionary flare entries are skipped.
        """
        data = _mapping(data)
        raw_flares = data.get("flares")
        flares: list[SolarFlare] = []
        if isinstance(raw_flares, list):
            for raw in raw_flares:
                if isinstance(raw, dict):
                    flares.append(SolarFlare.from_dict(raw))
                else:
                    logger.debug("Skipping malformed flare record: %r", raw)

        data_source = data.get("data_source")
        if data_source not in ("live", "cached", "demo"):
            data_source = "live"

        return cls(
            timestamp=parse_timestamp(data.get("timestamp")),
            solar_wind=SolarWind.from_dict(data.get("solar_wind")),
            geomagnetic=GeomagneticData.from_dict(data.get("geomagnetic")),
            flares=tuple(flares),
            data_source=data_source,
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize to the upstream dictionary shape."""
        return {
            "timestamp": format_timestamp(self.timestamp),
            "solar_wind": self.solar_wind.to_dict(),
            "geomagnetic": self.geomagnetic.to_dict(),
            "flares": [flare.to_dict() for flare in self.flares],
            "data_source": self.data_source,
        }
