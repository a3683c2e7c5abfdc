"""Dissemination layer - HTTP polling API."""

from cosmic_broadcast.api.cursors import PollCursorStore
from cosmic_broadcast.api.server import BroadcastAPI

__all__ = ["BroadcastAPI", "PollCursorStore"]
