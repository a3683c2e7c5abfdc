"""Signal-driven shutdown coordination for the broadcast server.

Usage:
    ```python
    async with GracefulShutdown(timeout=10.0) as shutdown:
        await api.start()
        shutdown.register_cleanup(api.stop)
        await shutdown.wait()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from contextlib import suppress
from types import FrameType
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_TIMEOUT = 30.0

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)

CleanupCallback = Callable[[], Awaitable[Any] | Any]


class ShutdownTimeoutError(Exception):
    """Raised when cleanup callbacks do not finish within the timeout."""


class GracefulShutdown:
    """Traps SIGTERM/SIGINT and runs cleanup callbacks on the way out.

    The first signal sets the shutdown event; a second one exits the process
    immediately with ``128 + signum``. Cleanup callbacks (sync or async) run
    in reverse registration order when the context exits, so resources are
    released in the opposite order to how they were acquired.
    """

    def __init__(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> None:
        """Initialize the handler.

        Args:
            timeout: Seconds allowed for all cleanup callbacks together.
        """
        self._timeout = timeout
        self._event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._requested = False
        self._force_exit = False
        self._cleanup: list[CleanupCallback] = []
        self._previous_handlers: dict[signal.Signals, Any] = {}

    @property
    def timeout(self) -> float:
        """Cleanup timeout in seconds."""
        return self._timeout

    @property
    def is_shutdown_requested(self) -> bool:
        return self._requested

    @property
    def is_force_exit_requested(self) -> bool:
        return self._force_exit

    def _shutdown_event(self) -> asyncio.Event:
        if self._event is None:
            self._event = asyncio.Event()
            if self._requested:
                self._event.set()
        return self._event

    def register_cleanup(self, callback: CleanupCallback) -> None:
        """Register a callback to run during shutdown."""
        self._cleanup.append(callback)

    def request_shutdown(self) -> None:
        """Request shutdown from application code."""
        if self._requested:
            return
        self._requested = True
        logger.info("Shutdown requested")
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Block until a signal arrives or shutdown is requested."""
        await self._shutdown_event().wait()

    def install_signal_handlers(self) -> None:
        """Trap the shutdown signals on the running loop."""
        self._loop = asyncio.get_running_loop()
        self._shutdown_event()

        for sig in SHUTDOWN_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._handle_signal, sig)
            except NotImplementedError:
                # Event loops without signal support (Windows)
                self._previous_handlers[sig] = signal.signal(sig, self._handle_signal_sync)
            except (ValueError, OSError) as e:
                logger.warning("Could not install handler for %s: %s", sig.name, e)

        logger.debug("Signal handlers installed")

    def remove_signal_handlers(self) -> None:
        """Restore the signal dispositions found at install time."""
        if self._loop is not None:
            for sig in SHUTDOWN_SIGNALS:
                if sig not in self._previous_handlers:
                    with suppress(ValueError, OSError, NotImplementedError):
                        self._loop.remove_signal_handler(sig)

        for sig, previous in self._previous_handlers.items():
            with suppress(ValueError, OSError):
                signal.signal(sig, previous)
        self._previous_handlers.clear()

        logger.debug("Signal handlers removed")

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self._requested:
            self._force_exit = True
            logger.warning("Received %s again, exiting immediately", sig.name)
            sys.exit(128 + sig.value)

        logger.info("Received %s, shutting down", sig.name)
        self.request_shutdown()

    def _handle_signal_sync(self, signum: int, _frame: FrameType | None) -> None:
        self._handle_signal(signal.Signals(signum))

    async def _run_callbacks(self) -> None:
        for callback in reversed(self._cleanup):
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error("Cleanup callback failed: %s", e)

    async def run_cleanup_callbacks(self) -> None:
        """Run every cleanup callback, newest first.

        Raises:
            ShutdownTimeoutError: If the callbacks exceed the timeout.
        """
        try:
            await asyncio.wait_for(self._run_callbacks(), timeout=self._timeout)
        except TimeoutError as e:
            raise ShutdownTimeoutError(
                f"Cleanup did not finish within {self._timeout:.1f}s"
            ) from e

    async def __aenter__(self) -> GracefulShutdown:
        self.install_signal_handlers()
        return self

    async def __aexit__(self, *_args: Any) -> None:
        self.remove_signal_handlers()
        await self.run_cleanup_callbacks()
