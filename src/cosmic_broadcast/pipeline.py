"""Telemetry pipeline: snapshot source -> detector -> broadcast service."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass

from cosmic_broadcast.broadcast.service import BroadcastService
from cosmic_broadcast.detector.events import EventDetector
from cosmic_broadcast.detector.models import SpaceWeatherEvent
from cosmic_broadcast.telemetry.demo import SnapshotSource
from cosmic_broadcast.telemetry.models import Snapshot

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0

# Snapshot-to-snapshot changes worth a system notice
WIND_SPEED_CHANGE_THRESHOLD = 100.0  # km/s, exclusive
KP_CHANGE_THRESHOLD = 2.0  # inclusive


@dataclass
class PipelineStats:
    """Counters for the pipeline loop."""

    snapshots_processed: int = 0
    events_broadcast: int = 0
    change_notices: int = 0
    failed_fetches: int = 0
    last_error: str | None = None


class Pipeline:
    """Polls a snapshot source and feeds the broadcast service.

    Each cycle fetches one snapshot, runs the detector over it and admits
    change notices, the optional weather update and every detected event in
    a single batch, so the burst is dispatched in priority order.

    Events are not marked announced here; that is up to whoever actually
    presents them (for example a subscriber on the broadcast service).

    Example:
        ```python
        pipeline = Pipeline(service, EventDetector(), DemoSnapshotSource())
        await pipeline.start()
        ...
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        service: BroadcastService,
        detector: EventDetector,
        source: SnapshotSource,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        broadcast_weather: bool = True,
    ) -> None:
        """Initialize the pipeline.

        Args:
            service: Broadcast service receiving the messages.
            detector: Event detector applied to every snapshot.
            source: Snapshot source polled each cycle.
            poll_interval: Seconds between cycles.
            broadcast_weather: Also publish weather summaries.
        """
        self.service = service
        self.detector = detector
        self.source = source
        self.poll_interval = poll_interval
        self.broadcast_weather = broadcast_weather
        self.stats = PipelineStats()
        self._previous: Snapshot | None = None

        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """Check whether the poll loop is active."""
        return self._task is not None and not self._task.done()

    def process_snapshot(self, snapshot: Snapshot) -> list[SpaceWeatherEvent]:
        """Detect events in a snapshot and broadcast them.

        Alongside the detected events, a system notice is sent when solar
        wind speed or Kp moved sharply since the previous snapshot. The
        weather summary goes out for the first snapshot and afterwards only
        for live data, so cached or demo repeats do not flood the bus.

        Returns:
            The events detected in this snapshot.
        """
        previous = self._previous
        events = self.detector.analyze(snapshot)

        with self.service.batched():
            if previous is not None:
                self._broadcast_changes(snapshot, previous)
            if self.broadcast_weather and (previous is None or snapshot.data_source == "live"):
                self.service.broadcast_weather_update(snapshot)
            for event in events:
                self.service.broadcast_event(event)

        self._previous = snapshot
        self.stats.snapshots_processed += 1
        self.stats.events_broadcast += len(events)
        if events:
            logger.info(
                "Snapshot produced %d event(s): %s",
                len(events),
                ", ".join(event.type.value for event in events),
            )
        return events

    def _broadcast_changes(self, snapshot: Snapshot, previous: Snapshot) -> None:
        speed = snapshot.solar_wind.speed
        old_speed = previous.solar_wind.speed
        if speed is not None and old_speed is not None:
            delta = abs(speed - old_speed)
            if delta > WIND_SPEED_CHANGE_THRESHOLD:
                direction = "increased" if speed > old_speed else "decreased"
                self._notice(
                    f"Solar Wind {direction.upper()}",
                    f"Solar wind speed {direction} by {delta:.0f} km/s to {speed:.0f} km/s",
                )

        kp_index = snapshot.geomagnetic.kp_index
        old_kp = previous.geomagnetic.kp_index
        if kp_index is not None and old_kp is not None:
            if abs(kp_index - old_kp) >= KP_CHANGE_THRESHOLD:
                direction = "elevated" if kp_index > old_kp else "subsided"
                self._notice(
                    f"Geomagnetic Activity {direction.upper()}",
                    f"Kp index {direction} from {old_kp:g} to {kp_index:g}",
                )

    def _notice(self, headline: str, content: str) -> None:
        self.service.broadcast_system(headline, content)
        self.stats.change_notices += 1
        logger.info("Change notice: %s", headline)

    async def run_once(self) -> list[SpaceWeatherEvent]:
        """Fetch one snapshot and process it.

        A failing fetch is logged and the cycle produces nothing.
        """
        try:
            snapshot = await self.source.fetch()
        except Exception as e:
            self.stats.failed_fetches += 1
            self.stats.last_error = str(e)
            logger.error("Snapshot fetch failed: %s", e)
            return []
        return self.process_snapshot(snapshot)

    async def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            await self.run_once()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)

    async def start(self) -> None:
        """Start the background poll loop."""
        if self.is_running:
            logger.warning("Pipeline already running")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("Pipeline started (poll interval %.1fs)", self.poll_interval)

    async def stop(self) -> None:
        """Stop the poll loop."""
        if self._task is None:
            return

        self._stop_event.set()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Pipeline stopped")
