"""Headline, icon and summary formatting for broadcast messages.

This module turns detector events and telemetry snapshots into the short,
human-readable text carried by broadcast messages.
"""

from __future__ import annotations

from typing import assert_never

from cosmic_broadcast.broadcast.models import BroadcastTone
from cosmic_broadcast.detector.models import EventType
from cosmic_broadcast.telemetry.models import Snapshot

# Weather tone thresholds
DANGER_KP = 7.0
DANGER_SPEED = 700.0
WARNING_KP = 5.0
WARNING_SPEED = 550.0

DJ_HEADLINE = "TRANSMISSION FROM THE VOID"
ALERT_PREFIX = "⚠️ ALERT: "

ICON_WEATHER = "☀️"
ICON_DJ = "🎙️"
ICON_SYSTEM = "⚙️"
ICON_ALERT = "🚨"


def event_headline(event_type: EventType) -> str:
    """Get the fixed headline for an event type."""
    match event_type:
        case EventType.MAJOR_FLARE:
            return "🌟 SOLAR FLARE DETECTED"
        case EventType.GEOMAGNETIC_STORM:
            return "🌀 GEOMAGNETIC STORM ACTIVE"
        case EventType.SEVERE_STORM:
            return "⚡ SEVERE STORM WARNING"
        case EventType.HIGH_SOLAR_WIND:
            return "💨 HIGH SOLAR WIND"
        case EventType.EXTREME_SOLAR_WIND:
            return "🌪️ EXTREME SOLAR WIND"
        case EventType.COMPOUND_EVENT:
            return "🔥 MULTIPLE EVENTS DETECTED"
        case _:
            assert_never(event_type)


def event_icon(event_type: EventType) -> str:
    """Get the icon for an event type."""
    match event_type:
        case EventType.MAJOR_FLARE:
            return "☀️"
        case EventType.GEOMAGNETIC_STORM | EventType.SEVERE_STORM:
            return "🌀"
        case EventType.HIGH_SOLAR_WIND | EventType.EXTREME_SOLAR_WIND:
            return "💨"
        case EventType.COMPOUND_EVENT:
            return "🔥"
        case _:
            assert_never(event_type)


def _number(value: float | None, fmt: str) -> str:
    return "n/a" if value is None else format(value, fmt)


def weather_headline(snapshot: Snapshot) -> str:
    """Build the one-line weather headline."""
    speed = _number(snapshot.solar_wind.speed, ".0f")
    kp_index = _number(snapshot.geomagnetic.kp_index, "g")
    return f"Solar Wind: {speed} km/s | Kp: {kp_index}"


def weather_summary(snapshot: Snapshot) -> str:
    """Build the multi-line wind/Kp/flare summary."""
    wind = snapshot.solar_wind
    geomagnetic = snapshot.geomagnetic
    return "\n".join(
        [
            f"Solar Wind: {_number(wind.speed, '.0f')} km/s "
            f"(density: {_number(wind.density, '.1f')} p/cm³)",
            f"Kp Index: {_number(geomagnetic.kp_index, 'g')} ({geomagnetic.storm_level})",
            f"Active Flares: {len(snapshot.flares)}",
        ]
    )


def weather_tone(snapshot: Snapshot) -> BroadcastTone:
    """Pick a tone from Kp and solar wind speed; absent values count as calm."""
    kp_index = snapshot.geomagnetic.kp_index or 0.0
    speed = snapshot.solar_wind.speed or 0.0
    if kp_index >= DANGER_KP or speed >= DANGER_SPEED:
        return BroadcastTone.DANGER
    if kp_index >= WARNING_KP or speed >= WARNING_SPEED:
        return BroadcastTone.WARNING
    return BroadcastTone.NEUTRAL
