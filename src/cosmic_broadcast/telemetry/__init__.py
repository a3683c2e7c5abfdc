"""Telemetry layer - snapshot models and sources."""

from cosmic_broadcast.telemetry.demo import DemoSnapshotSource, SnapshotSource
from cosmic_broadcast.telemetry.models import (
    GeomagneticData,
    Snapshot,
    SolarFlare,
    SolarWind,
)

__all__ = [
    "DemoSnapshotSource",
    "GeomagneticData",
    "Snapshot",
    "SnapshotSource",
    "SolarFlare",
    "SolarWind",
]
