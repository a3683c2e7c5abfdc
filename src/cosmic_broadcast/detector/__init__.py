"""Event detection layer - Threshold classification of snapshots."""

from cosmic_broadcast.detector.events import EventDetector
from cosmic_broadcast.detector.models import (
    CompoundEvent,
    DetectionConfig,
    EventSeverity,
    EventType,
    GeomagneticStormEvent,
    MajorFlareEvent,
    SolarWindEvent,
    SpaceWeatherEvent,
)

__all__ = [
    "CompoundEvent",
    "DetectionConfig",
    "EventDetector",
    "EventSeverity",
    "EventType",
    "GeomagneticStormEvent",
    "MajorFlareEvent",
    "SolarWindEvent",
    "SpaceWeatherEvent",
]
