"""Mappings from event severity to broadcast priority, tone and TTL.

Every function matches all members explicitly and ends in ``assert_never``:
a type checker reports a missing case, and an unexpected value raises at run
time instead of falling back to a default.
"""

from typing import assert_never

from cosmic_broadcast.broadcast.models import BroadcastPriority, BroadcastTone
from cosmic_broadcast.detector.models import EventSeverity


def severity_to_priority(severity: EventSeverity) -> BroadcastPriority:
    """Map event severity to broadcast priority.

    LOW never maps to BroadcastPriority.LOW; that ordinal is reserved for
    system-internal messages.
    """
    match severity:
        case EventSeverity.LOW | EventSeverity.MODERATE:
            return BroadcastPriority.NORMAL
        case EventSeverity.HIGH:
            return BroadcastPriority.HIGH
        case EventSeverity.SEVERE:
            return BroadcastPriority.URGENT
        case EventSeverity.EXTREME:
            return BroadcastPriority.CRITICAL
        case _:
            assert_never(severity)


def severity_to_tone(severity: EventSeverity) -> BroadcastTone:
    """Map event severity to broadcast tone."""
    match severity:
        case EventSeverity.LOW | EventSeverity.MODERATE:
            return BroadcastTone.NEUTRAL
        case EventSeverity.HIGH:
            return BroadcastTone.WARNING
        case EventSeverity.SEVERE | EventSeverity.EXTREME:
            return BroadcastTone.DANGER
        case _:
            assert_never(severity)


def calculate_ttl(priority: BroadcastPriority) -> int:
    """Return display time in milliseconds for a priority."""
    match priority:
        case BroadcastPriority.LOW:
            return 5_000
        case BroadcastPriority.NORMAL:
            return 8_000
        case BroadcastPriority.HIGH:
            return 12_000
        case BroadcastPriority.URGENT:
            return 15_000
        case BroadcastPriority.CRITICAL:
            return 20_000
        case _:
            assert_never(priority)
