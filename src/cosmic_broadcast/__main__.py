"""CLI entry point for Cosmic Broadcast.

Runs the broadcast service with its HTTP dissemination API and, optionally,
a demo telemetry feed.

Usage:
    python -m cosmic_broadcast [options]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import logging.config
import sys
from datetime import timedelta
from typing import NoReturn

from pydantic import ValidationError

from cosmic_broadcast import __version__
from cosmic_broadcast.api import BroadcastAPI, PollCursorStore
from cosmic_broadcast.broadcast import BroadcastService
from cosmic_broadcast.config import Settings, clear_settings_cache, get_settings
from cosmic_broadcast.detector import EventDetector
from cosmic_broadcast.pipeline import Pipeline
from cosmic_broadcast.shutdown import GracefulShutdown, ShutdownTimeoutError
from cosmic_broadcast.telemetry import DemoSnapshotSource

# Application info
APP_NAME = "Cosmic Broadcast"
APP_VERSION = __version__

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="cosmic-broadcast",
        description="Turn space-weather telemetry into prioritized broadcasts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m cosmic_broadcast                     Serve the broadcast API
  python -m cosmic_broadcast --demo              Serve with synthetic telemetry
  python -m cosmic_broadcast --config-check      Validate config and exit
  python -m cosmic_broadcast --log-level DEBUG   Enable debug logging
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {APP_VERSION}",
    )

    parser.add_argument(
        "--config-check",
        action="store_true",
        help="Validate configuration and exit without starting the server",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level (default: from settings)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Override API port (default: from settings)",
    )

    parser.add_argument(
        "--demo",
        action="store_true",
        help="Feed the pipeline with synthetic snapshots",
    )

    return parser


def configure_logging(level: str) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level string (DEBUG, INFO, etc.)
    """
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": (
                    "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "detailed" if level == "DEBUG" else "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        # Poll requests arrive every few seconds per client
        "loggers": {
            "aiohttp.access": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
        },
    }
    logging.config.dictConfig(config)


def print_banner() -> None:
    """Print the application startup banner."""
    banner = f"""
╔══════════════════════════════════════════════════════════════╗
║                                                              ║
║   {APP_NAME:^56}   ║
║   {"v" + APP_VERSION:^56}   ║
║                                                              ║
╚══════════════════════════════════════════════════════════════╝
"""
    print(banner)


def print_config_summary(settings: Settings, demo: bool) -> None:
    """Print a summary of the configuration.

    Args:
        settings: Application settings.
        demo: Whether the demo feed is enabled.
    """
    summary = settings.summary()
    print("Configuration:")
    print(f"  API: {summary['api']}")
    print(f"  Log Level: {summary['log_level']}")
    print(f"  Demo Feed: {demo}")
    print(f"  Poll Interval: {summary['poll_interval_seconds']}s")
    print(f"  History Size: {summary['history_size']}")
    print(f"  Channels: {summary['channels']}")
    print(f"  Min Priority: {summary['min_priority']}")
    print(f"  Flare Classes: {summary['flare_classes']}")
    print()


def validate_config() -> Settings | None:
    """Validate and load configuration.

    Returns:
        Settings instance if valid, None if invalid.
    """
    try:
        clear_settings_cache()
        return get_settings()
    except ValidationError as e:
        print("Configuration validation failed:", file=sys.stderr)
        for error in e.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            print(f"  {field}: {error['msg']}", file=sys.stderr)
        return None


def run_config_check(settings: Settings) -> int:
    """Print the validated configuration.

    Args:
        settings: Validated settings.

    Returns:
        Exit code (0 for success).
    """
    print("Configuration is valid!")
    print()
    print_config_summary(settings, demo=settings.demo_feed)
    print("All checks passed. Ready to run.")
    return EXIT_SUCCESS


async def run_service(
    settings: Settings,
    *,
    port: int,
    demo: bool,
    shutdown_timeout: float = 30.0,
) -> int:
    """Run the broadcast service until a shutdown signal arrives.

    Args:
        settings: Application settings.
        port: Port for the dissemination API.
        demo: Whether to run the pipeline on synthetic snapshots.
        shutdown_timeout: Maximum time to wait for cleanup.

    Returns:
        Exit code.
    """
    logger = logging.getLogger(__name__)
    shutdown = GracefulShutdown(timeout=shutdown_timeout)

    try:
        async with shutdown:
            polling_interval_ms = int(settings.poll_interval_seconds * 1000)
            service = BroadcastService(
                settings.broadcast.to_broadcast_config(polling_interval_ms)
            )
            shutdown.register_cleanup(service.close)

            cursors = PollCursorStore(
                max_clients=settings.api.max_clients,
                max_age=timedelta(seconds=settings.api.cursor_max_age_seconds),
            )
            detector = EventDetector(settings.detector.to_detection_config())
            api = BroadcastAPI(
                service,
                detector=detector,
                cursors=cursors,
                next_poll_ms=settings.api.next_poll_ms,
                history_window=settings.api.history_window,
            )
            await api.start(settings.api.host, port)
            shutdown.register_cleanup(api.stop)

            if demo:
                pipeline = Pipeline(
                    service,
                    detector,
                    DemoSnapshotSource(),
                    poll_interval=settings.poll_interval_seconds,
                    broadcast_weather=settings.broadcast_weather_updates,
                )
                await pipeline.start()
                shutdown.register_cleanup(pipeline.stop)

            service.broadcast_system(
                "Broadcast online", f"{APP_NAME} v{APP_VERSION} is on the air"
            )
            logger.info("Service running. Press Ctrl+C to stop.")

            await shutdown.wait()
            logger.info("Shutdown signal received, stopping service...")

        return EXIT_SUCCESS
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED
    except ShutdownTimeoutError as e:
        logger.error("%s", e)
        return EXIT_ERROR
    except Exception as e:
        logger.exception("Service failed: %s", e)
        return EXIT_ERROR


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:]).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    settings = validate_config()
    if settings is None:
        sys.exit(EXIT_CONFIG_ERROR)

    log_level = args.log_level or settings.log_level
    configure_logging(log_level)

    print_banner()

    if args.config_check:
        sys.exit(run_config_check(settings))

    demo = args.demo or settings.demo_feed
    port = args.port or settings.api.port

    print_config_summary(settings, demo)

    exit_code = asyncio.run(run_service(settings, port=port, demo=demo))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
