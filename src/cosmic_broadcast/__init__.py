"""Cosmic Broadcast - space-weather event detection and dissemination."""

__version__ = "0.1.0"
