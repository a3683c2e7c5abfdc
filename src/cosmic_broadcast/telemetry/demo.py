"""Synthetic snapshot source for demos and local runs."""

from __future__ import annotations

import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

from cosmic_broadcast.telemetry.models import (
    GeomagneticData,
    Snapshot,
    SolarFlare,
    SolarWind,
)

# Class letters weighted towards the common C class
FLARE_CLASS_WEIGHTS = ("C", "C", "C", "M", "M", "X")


class SnapshotSource(Protocol):
    """Anything that can produce one snapshot per poll cycle."""

    async def fetch(self) -> Snapshot:
        """Return the latest snapshot."""
        ...


def storm_level_for_kp(kp_index: float) -> str:
    """Return the descriptive storm level for a Kp index."""
    if kp_index >= 8:
        return "Severe"
    if kp_index >= 7:
        return "Strong"
    if kp_index >= 6:
        return "Moderate"
    if kp_index >= 5:
        return "Minor"
    return "None"


class DemoSnapshotSource:
    """Generates plausible random snapshots.

    Solar wind hovers around 400 km/s, Kp sits in the 1-6 range and each
    snapshot carries a handful of flares from the last 24 hours. Pass a
    seeded ``rng`` for reproducible output.
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sequence = 0

    async def fetch(self) -> Snapshot:
        return self.generate()

    def generate(self) -> Snapshot:
        """Build one synthetic snapshot."""
        now = self._clock()
        self._sequence += 1
        rng = self._rng

        kp_index = float(round(rng.random() * 5 + 1))
        wind = SolarWind(
            speed=float(round(400 + rng.uniform(-100, 100))),
            density=round(5 + rng.random() * 10, 1),
            temperature=float(round((100_000 + rng.random() * 100_000) / 1000) * 1000),
            timestamp=now,
        )
        geomagnetic = GeomagneticData(
            kp_index=kp_index,
            storm_active=kp_index >= 5,
            storm_level=storm_level_for_kp(kp_index),
            timestamp=now,
        )

        flares = []
        for i in range(rng.randint(2, 6)):
            class_type = rng.choice(FLARE_CLASS_WEIGHTS)
            magnitude = round(rng.random() * 9 + 1, 1)
            started = now - timedelta(seconds=rng.random() * 86_400)
            flares.append(
                SolarFlare(
                    id=f"DEMO-FLR-{self._sequence}-{i}",
                    flare_class=f"{class_type}{magnitude}",
                    class_type=class_type,
                    magnitude=magnitude,
                    timestamp=started,
                    source_region=f"AR{rng.randint(1000, 3999)}",
                    peak_time=started + timedelta(minutes=15),
                )
            )
        flares.sort(key=lambda f: f.timestamp or now, reverse=True)

        return Snapshot(
            timestamp=now,
            solar_wind=wind,
            geomagnetic=geomagnetic,
            flares=tuple(flares),
            data_source="demo",
        )
