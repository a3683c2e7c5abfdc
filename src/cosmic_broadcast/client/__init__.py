"""Client side of the dissemination API."""

from cosmic_broadcast.client.poller import BroadcastPoller, PollerStats

__all__ = ["BroadcastPoller", "PollerStats"]
