"""Threshold-based space-weather event detection.

The EventDetector classifies each incoming snapshot into zero or more typed
events. It keeps a small bounded memory of what it has already reported so
the same flare, or the same storm tier on the same day, is not re-announced on
every poll.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from typing import Any, TypeVar

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
from cosmic_broadcast.metrics import DETECTOR_RULE_ERRORS, EVENTS_DETECTED
from cosmic_broadcast.telemetry.models import Snapshot, SolarFlare

logger = logging.getLogger(__name__)

# Namespace for deterministic event ids derived from dedup keys
EVENT_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "events.cosmic-broadcast")

# Day-keyed dedup entries are kept for today and yesterday only
DAY_KEY_RETENTION = timedelta(days=1)

# Most recent events kept for inspection
DEFAULT_EVENT_HISTORY_SIZE = 100

# X-class magnitude at which a flare is EXTREME rather than SEVERE
EXTREME_FLARE_MAGNITUDE = 5.0

T = TypeVar("T")

EventListener = Callable[[SpaceWeatherEvent], None]


def _event_id(key: str) -> str:
    return str(uuid.uuid5(EVENT_ID_NAMESPACE, key))


class EventDetector:
    """Detects significant space-weather events in snapshots.

    Rules, evaluated in this order on every call to :meth:`analyze`:

    - Flare: each unseen M/X flare becomes a MAJOR_FLARE event.
    - Storm: Kp above the storm threshold becomes GEOMAGNETIC_STORM or
      SEVERE_STORM, at most once per (severity tier, UTC day).
    - Wind: solar wind speed above the high/extreme thresholds, at most once
      per (severity tier, UTC day).
    - Compound: two or more of the above rule families firing together.

    The detector never raises; a rule that trips over malformed data is
    logged and contributes nothing. Time comes from the snapshot timestamp,
    falling back to the injected clock, and event ids are derived from the
    dedup keys, so results are reproducible for a given detector state.

    Example:
        ```python
        detector = EventDetector()
        for event in detector.analyze(snapshot):
            service.broadcast_event(event)
        ```
    """

    def __init__(
        self,
        config: DetectionConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        history_size: int = DEFAULT_EVENT_HISTORY_SIZE,
    ) -> None:
        """Initialize the detector.

        Args:
            config: Detection thresholds (defaults to DetectionConfig()).
            clock: Time source used when a snapshot carries no timestamp.
            history_size: Number of detected events kept for inspection.
        """
        if history_size < 1:
            raise ValueError("history_size must be at least 1")

        self._config = config or DetectionConfig()
        self._clock = clock or (lambda: datetime.now(UTC))

        # flare id -> time it was first reported
        self._seen_flares: dict[str, datetime] = {}
        # (rule family, severity tier, UTC day)
        self._seen_tiers: set[tuple[str, EventSeverity, date]] = set()
        self._history: deque[SpaceWeatherEvent] = deque(maxlen=history_size)
        self._listeners: list[EventListener] = []

        logger.info("EventDetector initialized with config: %s", self._config)

    @property
    def config(self) -> DetectionConfig:
        """Return the active configuration."""
        return self._config

    def get_config(self) -> DetectionConfig:
        """Return the active configuration."""
        return self._config

    def update_config(self, **changes: Any) -> None:
        """Replace individual configuration fields."""
        self._config = self._config.updated(**changes)
        logger.info("EventDetector config updated: %s", self._config)

    def reset(self) -> None:
        """Forget every previously reported flare and storm/wind tier."""
        self._seen_flares.clear()
        self._seen_tiers.clear()
        logger.info("EventDetector dedup memory cleared")

    @property
    def tracked_flare_count(self) -> int:
        """Return the number of flare ids currently remembered."""
        return len(self._seen_flares)

    # Listeners and history

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        """Register a callable invoked with every detected event.

        Returns:
            A callable that removes the listener.
        """
        if listener not in self._listeners:
            self._listeners.append(listener)

        def remove() -> None:
            self.remove_listener(listener)

        return remove

    def remove_listener(self, listener: EventListener) -> None:
        """Unregister a listener; unknown listeners are ignored."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify_listeners(self, event: SpaceWeatherEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Error in event listener for %s", event.id)

    def get_history(self) -> list[SpaceWeatherEvent]:
        """Return remembered events, oldest first."""
        return list(self._history)

    def get_events_by_type(self, event_type: EventType) -> list[SpaceWeatherEvent]:
        """Return remembered events of one type, oldest first."""
        return [event for event in self._history if event.type == event_type]

    def get_recent_events(self, count: int = 10) -> list[SpaceWeatherEvent]:
        """Return the ``count`` most recent events, oldest first."""
        if count <= 0:
            return []
        return list(self._history)[-count:]

    def clear_history(self) -> None:
        """Forget the event history (dedup memory is kept)."""
        self._history.clear()
        logger.info("EventDetector event history cleared")

    def analyze(self, snapshot: Snapshot) -> list[SpaceWeatherEvent]:
        """Classify a snapshot into events.

        Args:
            snapshot: The latest telemetry snapshot.

        Returns:
            Detected events: flares (input order), storm, wind, compound.
        """
        now = self._reference_time(snapshot)
        self._prune(now)

        flare_events = self._run_rule("flare", self._detect_flares, snapshot, now, [])
        storm_event = self._run_rule("storm", self._detect_storm, snapshot, now, None)
        wind_event = self._run_rule("wind", self._detect_wind, snapshot, now, None)

        events: list[SpaceWeatherEvent] = list(flare_events)
        if storm_event is not None:
            events.append(storm_event)
        if wind_event is not None:
            events.append(wind_event)

        families_fired = sum(
            1 for fired in (flare_events, storm_event, wind_event) if fired
        )
        if self._config.detect_compound_events and families_fired >= 2:
            compound = self._create_compound_event(events, snapshot, now)
            if self._config.suppress_compound_constituents:
                events = [compound]
            else:
                events.append(compound)

        for event in events:
            EVENTS_DETECTED.labels(type=event.type.value).inc()
            logger.info(
                "Event detected: %s (%s) %s",
                event.type.value,
                event.severity.value,
                event.description,
            )
            self._history.append(event)

        for event in events:
            self._notify_listeners(event)

        return events

    def _reference_time(self, snapshot: Snapshot) -> datetime:
        timestamp = getattr(snapshot, "timestamp", None)
        if isinstance(timestamp, datetime):
            return timestamp if timestamp.tzinfo else timestamp.replace(tzinfo=UTC)
        return self._clock()

    def _prune(self, now: datetime) -> None:
        """Drop dedup entries that fell out of their windows."""
        flare_cutoff = now - self._config.flare_dedup_window
        expired = [fid for fid, seen in self._seen_flares.items() if seen < flare_cutoff]
        for flare_id in expired:
            del self._seen_flares[flare_id]

        oldest_day = (now - DAY_KEY_RETENTION).astimezone(UTC).date()
        self._seen_tiers = {key for key in self._seen_tiers if key[2] >= oldest_day}

        if expired:
            logger.debug("Pruned %d expired flare ids", len(expired))

    def _run_rule(
        self,
        name: str,
        rule: Callable[[Snapshot, datetime], T],
        snapshot: Snapshot,
        now: datetime,
        empty: T,
    ) -> T:
        try:
            return rule(snapshot, now)
        except Exception:
            DETECTOR_RULE_ERRORS.labels(rule=name).inc()
            logger.warning("Detector %s rule failed on snapshot", name, exc_info=True)
            return empty

    def _claim_tier(self, family: str, severity: EventSeverity, now: datetime) -> bool:
        """Return True if (family, tier, day) has not been reported yet."""
        key = (family, severity, now.astimezone(UTC).date())
        if key in self._seen_tiers:
            return False
        self._seen_tiers.add(key)
        return True

    # Rules

    def _detect_flares(self, snapshot: Snapshot, now: datetime) -> list[SpaceWeatherEvent]:
        events: list[SpaceWeatherEvent] = []

        for flare in snapshot.flares or ():
            if not isinstance(flare, SolarFlare) or not flare.id:
                continue
            if flare.class_type not in self._config.flare_classes_to_detect:
                continue
            if flare.id in self._seen_flares:
                continue

            events.append(self._create_flare_event(flare, snapshot, now))
            self._seen_flares[flare.id] = now

        return events

    def _create_flare_event(
        self, flare: SolarFlare, snapshot: Snapshot, now: datetime
    ) -> MajorFlareEvent:
        if flare.class_type == "X":
            magnitude = flare.magnitude or 0.0
            severity = (
                EventSeverity.EXTREME
                if magnitude >= EXTREME_FLARE_MAGNITUDE
                else EventSeverity.SEVERE
            )
        else:
            severity = EventSeverity.HIGH

        return MajorFlareEvent(
            id=_event_id(f"flare:{flare.id}"),
            type=EventType.MAJOR_FLARE,
            severity=severity,
            detected_at=now,
            description=f"{flare.label} solar flare detected from {flare.source_region}",
            snapshot=snapshot,
            flare=flare,
        )

    def _detect_storm(
        self, snapshot: Snapshot, now: datetime
    ) -> GeomagneticStormEvent | None:
        kp_index = snapshot.geomagnetic.kp_index
        if kp_index is None or kp_index < self._config.min_kp_for_storm:
            return None

        if kp_index >= self._config.min_kp_for_severe_storm:
            event_type = EventType.SEVERE_STORM
            severity = (
                EventSeverity.EXTREME
                if kp_index >= self._config.min_kp_for_extreme_storm
                else EventSeverity.SEVERE
            )
        else:
            event_type = EventType.GEOMAGNETIC_STORM
            severity = EventSeverity.HIGH

        if not self._claim_tier("storm", severity, now):
            return None

        storm_level = snapshot.geomagnetic.storm_level
        day = now.astimezone(UTC).date().isoformat()
        return GeomagneticStormEvent(
            id=_event_id(f"storm:{severity.value}:{day}"),
            type=event_type,
            severity=severity,
            detected_at=now,
            description=f"{storm_level} geomagnetic storm (Kp={kp_index:g})",
            snapshot=snapshot,
            kp_index=kp_index,
            storm_level=storm_level,
        )

    def _detect_wind(self, snapshot: Snapshot, now: datetime) -> SolarWindEvent | None:
        speed = snapshot.solar_wind.speed
        if speed is None:
            return None

        if speed >= self._config.min_speed_for_extreme_wind:
            event_type = EventType.EXTREME_SOLAR_WIND
            severity = EventSeverity.EXTREME
            label = "Extreme"
        elif speed >= self._config.min_speed_for_high_wind:
            event_type = EventType.HIGH_SOLAR_WIND
            severity = EventSeverity.HIGH
            label = "High"
        else:
            return None

        if not self._claim_tier("wind", severity, now):
            return None

        day = now.astimezone(UTC).date().isoformat()
        return SolarWindEvent(
            id=_event_id(f"wind:{severity.value}:{day}"),
            type=event_type,
            severity=severity,
            detected_at=now,
            description=f"{label} solar wind speed detected ({speed:.0f} km/s)",
            snapshot=snapshot,
            speed=speed,
        )

    def _create_compound_event(
        self,
        sub_events: list[SpaceWeatherEvent],
        snapshot: Snapshot,
        now: datetime,
    ) -> CompoundEvent:
        severity = max(event.severity for event in sub_events)
        intensity = min(
            1.0, sum(event.severity.weight for event in sub_events) / len(sub_events)
        )
        event_types = ", ".join(event.type.value for event in sub_events)

        return CompoundEvent(
            id=_event_id("compound:" + ",".join(event.id for event in sub_events)),
            type=EventType.COMPOUND_EVENT,
            severity=severity,
            detected_at=now,
            description=f"Multiple space weather events detected: {event_types}",
            snapshot=snapshot,
            sub_events=tuple(sub_events),
            intensity=intensity,
        )
