"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Cosmic Broadcast service, loading and validating environment variables at
startup.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cosmic_broadcast.broadcast.models import (
    DEFAULT_CHANNELS,
    BroadcastConfig,
    BroadcastPriority,
    BroadcastType,
)
from cosmic_broadcast.detector.models import DetectionConfig

FlareClass = Literal["C", "M", "X"]


class DetectorSettings(BaseSettings):
    """Event detection thresholds."""

    model_config = SettingsConfigDict(env_prefix="DETECTOR_")

    flare_classes: list[FlareClass] = Field(
        default=["M", "X"],
        alias="DETECTOR_FLARE_CLASSES",
        description="Flare classes that produce MAJOR_FLARE events",
    )
    min_kp_for_storm: float = Field(
        default=5.0,
        alias="DETECTOR_MIN_KP_FOR_STORM",
        ge=0,
        le=9,
    )
    min_kp_for_severe_storm: float = Field(
        default=7.0,
        alias="DETECTOR_MIN_KP_FOR_SEVERE_STORM",
        ge=0,
        le=9,
    )
    min_kp_for_extreme_storm: float = Field(
        default=8.0,
        alias="DETECTOR_MIN_KP_FOR_EXTREME_STORM",
        ge=0,
        le=9,
    )
    min_speed_for_high_wind: float = Field(
        default=600.0,
        alias="DETECTOR_MIN_SPEED_FOR_HIGH_WIND",
        gt=0,
        description="Solar wind speed (km/s) for HIGH_SOLAR_WIND",
    )
    min_speed_for_extreme_wind: float = Field(
        default=700.0,
        alias="DETECTOR_MIN_SPEED_FOR_EXTREME_WIND",
        gt=0,
        description="Solar wind speed (km/s) for EXTREME_SOLAR_WIND",
    )
    detect_compound_events: bool = Field(
        default=True,
        alias="DETECTOR_DETECT_COMPOUND_EVENTS",
    )
    suppress_compound_constituents: bool = Field(
        default=False,
        alias="DETECTOR_SUPPRESS_COMPOUND_CONSTITUENTS",
        description="Emit only the compound event when rules coincide",
    )
    flare_dedup_hours: float = Field(
        default=48.0,
        alias="DETECTOR_FLARE_DEDUP_HOURS",
        gt=0,
    )

    @model_validator(mode="after")
    def validate_ordering(self) -> DetectorSettings:
        """Thresholds must rise with severity."""
        if not (
            self.min_kp_for_storm
            <= self.min_kp_for_severe_storm
            <= self.min_kp_for_extreme_storm
        ):
            raise ValueError("Kp thresholds must be non-decreasing")
        if self.min_speed_for_high_wind > self.min_speed_for_extreme_wind:
            raise ValueError("High wind threshold must not exceed extreme wind threshold")
        return self

    def to_detection_config(self) -> DetectionConfig:
        """Build the detector configuration."""
        return DetectionConfig(
            flare_classes_to_detect=tuple(self.flare_classes),
            min_kp_for_storm=self.min_kp_for_storm,
            min_kp_for_severe_storm=self.min_kp_for_severe_storm,
            min_kp_for_extreme_storm=self.min_kp_for_extreme_storm,
            min_speed_for_high_wind=self.min_speed_for_high_wind,
            min_speed_for_extreme_wind=self.min_speed_for_extreme_wind,
            detect_compound_events=self.detect_compound_events,
            suppress_compound_constituents=self.suppress_compound_constituents,
            flare_dedup_window=timedelta(hours=self.flare_dedup_hours),
        )


class BroadcastSettings(BaseSettings):
    """Broadcast bus admission and retention settings."""

    model_config = SettingsConfigDict(env_prefix="BROADCAST_")

    enabled: bool = Field(default=True, alias="BROADCAST_ENABLED")
    max_history_size: int = Field(
        default=50,
        alias="BROADCAST_MAX_HISTORY_SIZE",
        ge=1,
        description="Number of dispatched messages kept in history",
    )
    auto_acknowledge_delay_ms: int = Field(
        default=10_000,
        alias="BROADCAST_AUTO_ACKNOWLEDGE_DELAY_MS",
        ge=0,
        description="Delay before auto-acknowledge (0 = manual only)",
    )
    channels: list[BroadcastType] = Field(
        default=[*DEFAULT_CHANNELS, BroadcastType.SYSTEM],
        alias="BROADCAST_CHANNELS",
        description="Message types admitted by the bus",
    )
    min_priority: BroadcastPriority = Field(
        default=BroadcastPriority.LOW,
        alias="BROADCAST_MIN_PRIORITY",
        description="Lowest priority admitted (name or 0-4)",
    )
    enable_audio: bool = Field(default=True, alias="BROADCAST_ENABLE_AUDIO")
    auto_dismiss_on_ttl: bool = Field(default=True, alias="BROADCAST_AUTO_DISMISS_ON_TTL")

    @field_validator("min_priority", mode="before")
    @classmethod
    def validate_min_priority(cls, v: object) -> BroadcastPriority:
        """Accept priority names as well as ordinals."""
        return BroadcastPriority.parse(v)

    def to_broadcast_config(self, polling_interval_ms: int = 30_000) -> BroadcastConfig:
        """Build the broadcast service configuration."""
        return BroadcastConfig(
            enabled=self.enabled,
            max_history_size=self.max_history_size,
            polling_interval_ms=polling_interval_ms,
            auto_acknowledge_delay_ms=self.auto_acknowledge_delay_ms,
            subscribed_channels=tuple(self.channels),
            min_display_priority=self.min_priority,
            enable_audio=self.enable_audio,
            auto_dismiss_on_ttl=self.auto_dismiss_on_ttl,
        )


class ApiSettings(BaseSettings):
    """Dissemination API settings."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = Field(default="0.0.0.0", alias="API_HOST")
    port: int = Field(default=8080, alias="API_PORT", ge=1, le=65535)
    next_poll_ms: int = Field(
        default=5_000,
        alias="API_NEXT_POLL_MS",
        gt=0,
        description="Poll interval suggested to clients",
    )
    history_window: int = Field(
        default=20,
        alias="API_HISTORY_WINDOW",
        ge=1,
        description="Most recent history entries considered per poll",
    )
    max_clients: int = Field(
        default=10_000,
        alias="API_MAX_CLIENTS",
        ge=1,
        description="Maximum number of stored poll cursors",
    )
    cursor_max_age_seconds: float = Field(
        default=3600.0,
        alias="API_CURSOR_MAX_AGE_SECONDS",
        gt=0,
        description="Cursors idle longer than this are forgotten",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files.

    Example:
        ```python
        from cosmic_broadcast.config import get_settings

        settings = get_settings()
        print(settings.api.port)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    detector: DetectorSettings = Field(default_factory=DetectorSettings)
    broadcast: BroadcastSettings = Field(default_factory=BroadcastSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    poll_interval_seconds: float = Field(
        default=30.0,
        alias="POLL_INTERVAL_SECONDS",
        gt=0,
        description="Interval between telemetry snapshots",
    )
    demo_feed: bool = Field(
        default=False,
        alias="DEMO_FEED",
        description="Feed the pipeline with synthetic snapshots",
    )
    broadcast_weather_updates: bool = Field(
        default=True,
        alias="BROADCAST_WEATHER_UPDATES",
        description="Publish a weather summary for every snapshot",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def summary(self) -> dict[str, str]:
        """Get a flat, printable summary of the settings."""
        return {
            "api": f"{self.api.host}:{self.api.port}",
            "log_level": self.log_level,
            "poll_interval_seconds": str(self.poll_interval_seconds),
            "demo_feed": str(self.demo_feed),
            "history_size": str(self.broadcast.max_history_size),
            "channels": ",".join(channel.value for channel in self.broadcast.channels),
            "min_priority": self.broadcast.min_priority.name,
            "flare_classes": ",".join(self.detector.flare_classes),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
