"""Broadcast bus turning producer facts into prioritized messages.

The BroadcastService admits events, weather updates, announcer scripts,
system notices and alerts, converts each into exactly one BroadcastMessage,
dispatches it to in-process subscribers and keeps a bounded history that the
polling API serves to clients.

All state is mutated from a single thread (the asyncio event loop in the
hosted application). A multi-threaded host must serialize calls externally.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from functools import partial
from typing import Any, Protocol

from cosmic_broadcast.broadcast.formatter import (
    ALERT_PREFIX,
    DJ_HEADLINE,
    ICON_ALERT,
    ICON_DJ,
    ICON_SYSTEM,
    ICON_WEATHER,
    event_headline,
    event_icon,
    weather_headline,
    weather_summary,
    weather_tone,
)
from cosmic_broadcast.broadcast.history import BroadcastHistory
from cosmic_broadcast.broadcast.models import (
    BroadcastConfig,
    BroadcastHistoryEntry,
    BroadcastMessage,
    BroadcastPriority,
    BroadcastStats,
    BroadcastTone,
    BroadcastType,
    utc_now,
)
from cosmic_broadcast.broadcast.severity import (
    calculate_ttl,
    severity_to_priority,
    severity_to_tone,
)
from cosmic_broadcast.detector.models import EventSeverity, SpaceWeatherEvent
from cosmic_broadcast.metrics import (
    BROADCASTS_ADMITTED,
    BROADCASTS_REJECTED,
    LISTENER_ERRORS,
)
from cosmic_broadcast.telemetry.models import Snapshot

logger = logging.getLogger(__name__)

# Fixed display times (ms) for message kinds outside the priority ladder
WEATHER_UPDATE_TTL = 60_000
DJ_ANNOUNCEMENT_TTL = 15_000
SYSTEM_TTL = 8_000

BroadcastListener = Callable[[BroadcastMessage], None]


class TimerHandle(Protocol):
    """A cancellable deferred callback."""

    def cancel(self) -> None:
        """Cancel the callback if it has not run yet."""
        ...


class Scheduler(Protocol):
    """Schedules deferred callbacks on the service's execution context."""

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> TimerHandle | None:
        """Run ``callback`` after ``delay`` seconds."""
        ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop.

    Outside a running loop (plain synchronous use) nothing is scheduled and
    acknowledgement stays manual.
    """

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> TimerHandle | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; deferred callback not scheduled")
            return None
        return loop.call_later(delay, callback)


def generate_broadcast_id() -> str:
    """Return a new unique broadcast id."""
    return f"bc-{uuid.uuid4().hex}"


class BroadcastService:
    """Process-local broadcast broker.

    Every ``broadcast_*`` call builds a message and runs admission: the
    message is rejected if the service is disabled, its priority is below
    ``min_display_priority`` or its type is not a subscribed channel.
    Admitted messages join a queue ordered by priority (stable for ties) and
    the head of the queue is dispatched immediately: it becomes the current
    broadcast, is recorded in history and is handed to every subscriber.

    Because each admission dispatches one element, ordering only matters
    when several messages are admitted before dispatch. Use :meth:`batched`
    to admit a burst and dispatch it in priority order.

    Example:
        ```python
        service = BroadcastService(BroadcastConfig(max_history_size=100))
        unsubscribe = service.subscribe(lambda msg: print(msg.headline))

        service.broadcast_alert("Grid advisory", "Expect HF radio blackouts")
        latest = service.get_history(limit=1)
        unsubscribe()
        ```
    """

    def __init__(
        self,
        config: BroadcastConfig | None = None,
        *,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Admission and retention policy.
            scheduler: Deferred callback scheduler for auto-acknowledge and
                TTL auto-dismiss (defaults to the running event loop).
            clock: Time source returning aware UTC datetimes.
        """
        self._config = config or BroadcastConfig()
        self._scheduler: Scheduler = scheduler or LoopScheduler()
        self._clock = clock or utc_now

        self._listeners: list[BroadcastListener] = []
        self._history = BroadcastHistory(self._config.max_history_size)
        self._queue: list[BroadcastMessage] = []
        self._current: BroadcastMessage | None = None
        # broadcast id -> {"acknowledge" | "expire": handle}
        self._timers: dict[str, dict[str, TimerHandle]] = {}
        self._batch_depth = 0

        self._started_at = self._clock()
        self._total_received = 0
        self._alert_count = 0
        self._event_count = 0
        self._last_broadcast_at: datetime | None = None

    @property
    def config(self) -> BroadcastConfig:
        """Return the active configuration."""
        return self._config

    @property
    def pending_count(self) -> int:
        """Return the number of admitted but undispatched messages."""
        return len(self._queue)

    # Subscription

    def subscribe(self, listener: BroadcastListener) -> Callable[[], None]:
        """Register a listener for every dispatched message.

        Args:
            listener: Callable invoked synchronously with each message.

        Returns:
            A callable that removes the listener.
        """
        if listener not in self._listeners:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self, message: BroadcastMessage) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                LISTENER_ERRORS.inc()
                logger.exception("Error in broadcast listener for %s", message.id)

    # Producers

    def broadcast_event(self, event: SpaceWeatherEvent) -> BroadcastMessage:
        """Create and admit a message for a detected event."""
        priority = severity_to_priority(event.severity)
        message = BroadcastMessage(
            id=generate_broadcast_id(),
            type=BroadcastType.COSMIC_EVENT,
            priority=priority,
            tone=severity_to_tone(event.severity),
            headline=event_headline(event.type),
            content=event.description,
            timestamp=self._clock(),
            ttl=calculate_ttl(priority),
            event=event,
            snapshot=event.snapshot,
            icon=event_icon(event.type),
            has_audio=self._audio(priority >= BroadcastPriority.HIGH),
            tags=[event.type.value, event.severity.value],
        )
        self._event_count += 1
        self._queue_broadcast(message)
        return message

    def broadcast_weather_update(self, snapshot: Snapshot) -> BroadcastMessage:
        """Create and admit a routine weather summary."""
        message = BroadcastMessage(
            id=generate_broadcast_id(),
            type=BroadcastType.WEATHER_UPDATE,
            priority=BroadcastPriority.NORMAL,
            tone=weather_tone(snapshot),
            headline=weather_headline(snapshot),
            content=weather_summary(snapshot),
            timestamp=self._clock(),
            ttl=WEATHER_UPDATE_TTL,
            snapshot=snapshot,
            icon=ICON_WEATHER,
            tags=["weather", "update"],
        )
        self._queue_broadcast(message)
        return message

    def broadcast_dj_announcement(
        self, script: str, event: SpaceWeatherEvent | None = None
    ) -> BroadcastMessage:
        """Create and admit an announcer script meant to be spoken."""
        priority = (
            severity_to_priority(event.severity) if event else BroadcastPriority.NORMAL
        )
        message = BroadcastMessage(
            id=generate_broadcast_id(),
            type=BroadcastType.DJ_ANNOUNCEMENT,
            priority=priority,
            tone=BroadcastTone.CINEMATIC,
            headline=DJ_HEADLINE,
            content=script,
            timestamp=self._clock(),
            ttl=DJ_ANNOUNCEMENT_TTL,
            event=event,
            icon=ICON_DJ,
            has_audio=self._audio(True),
            tags=["dj", "announcement"],
        )
        self._queue_broadcast(message)
        return message

    def broadcast_system(
        self,
        headline: str,
        content: str,
        priority: BroadcastPriority | int = BroadcastPriority.LOW,
    ) -> BroadcastMessage:
        """Create and admit a system notification."""
        message = BroadcastMessage(
            id=generate_broadcast_id(),
            type=BroadcastType.SYSTEM,
            priority=BroadcastPriority(priority),
            tone=BroadcastTone.NEUTRAL,
            headline=headline,
            content=content,
            timestamp=self._clock(),
            ttl=SYSTEM_TTL,
            icon=ICON_SYSTEM,
            tags=["system"],
        )
        self._queue_broadcast(message)
        return message

    def broadcast_alert(
        self,
        headline: str,
        content: str,
        severity: EventSeverity = EventSeverity.SEVERE,
    ) -> BroadcastMessage:
        """Create and admit an emergency alert. Alerts stay up twice as long."""
        priority = severity_to_priority(severity)
        message = BroadcastMessage(
            id=generate_broadcast_id(),
            type=BroadcastType.ALERT,
            priority=priority,
            tone=BroadcastTone.DANGER,
            headline=f"{ALERT_PREFIX}{headline}",
            content=content,
            timestamp=self._clock(),
            ttl=calculate_ttl(priority) * 2,
            icon=ICON_ALERT,
            has_audio=self._audio(True),
            tags=["alert", severity.value],
        )
        self._alert_count += 1
        self._queue_broadcast(message)
        return message

    def _audio(self, wanted: bool) -> bool:
        return wanted and self._config.enable_audio

    # Admission and dispatch

    def _rejection_reason(self, message: BroadcastMessage) -> str | None:
        if not self._config.enabled:
            return "disabled"
        if message.priority < self._config.min_display_priority:
            return "priority"
        if message.type not in self._config.subscribed_channels:
            return "channel"
        return None

    def _queue_broadcast(self, message: BroadcastMessage) -> None:
        reason = self._rejection_reason(message)
        if reason is not None:
            BROADCASTS_REJECTED.labels(reason=reason).inc()
            logger.debug(
                "Rejected broadcast %s (%s, priority %s): %s",
                message.id,
                message.type.value,
                message.priority.name,
                reason,
            )
            return

        self._queue.append(message)
        # list.sort is stable, so equal priorities keep admission order
        self._queue.sort(key=lambda queued: queued.priority, reverse=True)

        self._total_received += 1
        self._last_broadcast_at = self._clock()
        BROADCASTS_ADMITTED.labels(type=message.type.value).inc()

        if self._batch_depth == 0:
            self._process_queue()

    def _process_queue(self) -> None:
        """Dispatch the highest-priority queued message, if any."""
        if not self._queue:
            return

        message = self._queue.pop(0)
        self._current = message
        self._history.append(
            BroadcastHistoryEntry(
                broadcast=message,
                received_at=self._clock(),
                displayed_for=message.ttl,
            )
        )
        logger.info(
            "Broadcast %s [%s/%s]: %s",
            message.id,
            message.type.value,
            message.priority.name,
            message.headline,
        )

        self._notify_listeners(message)
        self._schedule_timers(message)

    def _schedule_timers(self, message: BroadcastMessage) -> None:
        delay_ms = self._config.auto_acknowledge_delay_ms
        if delay_ms > 0:
            self._schedule(message.id, "acknowledge", delay_ms, self._auto_acknowledge)
        if self._config.auto_dismiss_on_ttl:
            self._schedule(message.id, "expire", message.ttl, self._expire)

    def _schedule(
        self,
        broadcast_id: str,
        kind: str,
        delay_ms: int,
        callback: Callable[[str], None],
    ) -> None:
        handle = self._scheduler.call_later(
            delay_ms / 1000, partial(self._fire_timer, broadcast_id, kind, callback)
        )
        if handle is not None:
            self._timers.setdefault(broadcast_id, {})[kind] = handle

    def _fire_timer(
        self, broadcast_id: str, kind: str, callback: Callable[[str], None]
    ) -> None:
        handles = self._timers.get(broadcast_id)
        if handles is not None:
            handles.pop(kind, None)
            if not handles:
                del self._timers[broadcast_id]
        callback(broadcast_id)

    def _cancel_timers(self, broadcast_id: str) -> None:
        for handle in self._timers.pop(broadcast_id, {}).values():
            handle.cancel()

    def _auto_acknowledge(self, broadcast_id: str) -> None:
        logger.debug("Auto-acknowledging broadcast %s", broadcast_id)
        self.acknowledge_broadcast(broadcast_id)

    def _expire(self, broadcast_id: str) -> None:
        if self._current is None or self._current.id != broadcast_id:
            return
        logger.debug("Broadcast %s reached its TTL", broadcast_id)
        self._current = None
        self._process_queue()

    @contextmanager
    def batched(self) -> Iterator[None]:
        """Defer dispatch until the block exits.

        Messages admitted inside the block are queued; on exit the whole
        queue is dispatched in priority order (ties in admission order).
        Blocks may be nested; only the outermost one drains.
        """
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                while self._queue:
                    self._process_queue()

    # Queries and control

    def acknowledge_broadcast(self, broadcast_id: str) -> bool:
        """Mark a broadcast acknowledged.

        If it is the current broadcast, "current" is cleared and the next
        queued message, if any, is dispatched.

        Returns:
            True if the broadcast was found in history.
        """
        self._cancel_timers(broadcast_id)

        entry = self._history.find(broadcast_id)
        if entry is not None:
            entry.broadcast.acknowledged = True
            entry.user_action = "dismissed"

        if self._current is not None and self._current.id == broadcast_id:
            self._current = None
            self._process_queue()

        return entry is not None

    def get_current_broadcast(self) -> BroadcastMessage | None:
        """Return the message currently on display."""
        return self._current

    def get_history(self, limit: int | None = None) -> list[BroadcastHistoryEntry]:
        """Return history entries, most recent first."""
        return self._history.recent(limit)

    def get_recent_by_type(
        self, broadcast_type: BroadcastType, limit: int = 5
    ) -> list[BroadcastHistoryEntry]:
        """Return recent history entries of one type, most recent first."""
        return self._history.recent_by_type(broadcast_type, limit)

    def get_stats(self) -> BroadcastStats:
        """Return counters plus uptime."""
        uptime = self._clock() - self._started_at
        return BroadcastStats(
            total_received=self._total_received,
            alert_count=self._alert_count,
            event_count=self._event_count,
            last_broadcast_at=self._last_broadcast_at,
            uptime_ms=int(uptime.total_seconds() * 1000),
        )

    def update_config(self, **changes: Any) -> None:
        """Replace individual configuration fields."""
        config = self._config.updated(**changes)
        self._history.resize(config.max_history_size)
        self._config = config
        logger.info("BroadcastService config updated: %s", self._config)

    def clear_history(self) -> None:
        """Drop all history entries."""
        self._history.clear()
        logger.info("Broadcast history cleared")

    def close(self) -> None:
        """Cancel every pending deferred callback."""
        for broadcast_id in list(self._timers):
            self._cancel_timers(broadcast_id)
