"""Graceful shutdown handling for JobTracker deployments.

This module provides signal handling and shutdown coordination so that:
- In-flight requests complete or time out before resources go away
- Pending cache warm tasks are flushed and breaker timers cancelled
- Redis and database pools are closed properly
- Shutdown progress is logged at INFO level

Usage with FastAPI:
    >>> manager = LifecycleManager(cache=layer, databases=[primary, chat])
    >>>
    >>> @asynccontextmanager
    >>> async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    ...     manager.install_signal_handlers()
    ...     yield
    ...     await manager.shutdown()
"""

import asyncio
import logging
import signal
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from jobtracker.cache.layer import CacheLayer
    from jobtracker.core.database import Database

logger = logging.getLogger(__name__)


class ShutdownPhase(Enum):
    """Shutdown phases for tracking progress."""

    NOT_STARTED = "not_started"
    SIGNAL_RECEIVED = "signal_received"
    DRAINING_REQUESTS = "draining_requests"
    FLUSHING_CACHE = "flushing_cache"
    CLOSING_CONNECTIONS = "closing_connections"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ShutdownState:
    """Tracks shutdown progress and timing."""

    phase: ShutdownPhase = ShutdownPhase.NOT_STARTED
    started_at: datetime | None = None
    completed_at: datetime | None = None
    signal_received: str | None = None
    in_flight_requests: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float | None:
        """Calculate shutdown duration in seconds."""
        if self.started_at is None:
            return None
        end = self.completed_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()


class LifecycleManager:
    """Manages application lifecycle with graceful shutdown support.

    Coordinates shutdown sequence:
    1. Receive signal (SIGTERM/SIGINT)
    2. Stop accepting new requests
    3. Wait for in-flight requests (with timeout)
    4. Shut down the cache layer (warmers, breaker timers, Redis)
    5. Close database connection pools

    Shutdown continues even if individual steps fail. All errors are logged
    and collected in ShutdownState.errors.
    """

    def __init__(
        self,
        cache: "CacheLayer | None" = None,
        databases: Sequence["Database"] = (),
        shutdown_timeout: float = 30.0,
    ) -> None:
        """Initialize lifecycle manager.

        Args:
            cache: Cache layer to shut down. If None, the step is skipped.
            databases: Connection pools to close, in order
            shutdown_timeout: Maximum seconds to wait for in-flight requests
        """
        self.cache = cache
        self.databases = list(databases)
        self.shutdown_timeout = shutdown_timeout

        self.state = ShutdownState()
        self._shutdown_event = asyncio.Event()
        self._shutdown_lock = asyncio.Lock()
        self._active_requests: set[str] = set()
        self._signal_handlers_installed = False

    @property
    def is_shutting_down(self) -> bool:
        """Check if shutdown is in progress."""
        return self.state.phase not in (
            ShutdownPhase.NOT_STARTED,
            ShutdownPhase.COMPLETE,
        )

    @property
    def shutdown_requested(self) -> bool:
        """Check if shutdown signal was received."""
        return self._shutdown_event.is_set()

    def install_signal_handlers(self) -> None:
        """Install SIGTERM/SIGINT handlers. Safe to call multiple times."""
        if self._signal_handlers_installed:
            return

        loop = asyncio.get_running_loop()

        def create_handler(sig: signal.Signals) -> Callable[[], None]:
            def handler() -> None:
                asyncio.create_task(self._handle_signal(sig))

            return handler

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, create_handler(sig))

        self._signal_handlers_installed = True
        logger.info("Signal handlers installed for graceful shutdown")

    def remove_signal_handlers(self) -> None:
        """Remove installed signal handlers."""
        if not self._signal_handlers_installed:
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.remove_signal_handler(sig)
            except (ValueError, RuntimeError):
                # Loop may be closing
                pass

        self._signal_handlers_installed = False

    async def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, initiating graceful shutdown")
        self.state.signal_received = sig.name
        self._shutdown_event.set()
        await self.shutdown()

    def track_request_start(self, request_id: str) -> None:
        """Track start of a new request.

        Raises:
            RuntimeError: If shutdown is in progress
        """
        if self.shutdown_requested:
            raise RuntimeError("Cannot accept new requests during shutdown")

        self._active_requests.add(request_id)
        self.state.in_flight_requests = len(self._active_requests)

    def track_request_end(self, request_id: str) -> None:
        """Track completion of a request."""
        self._active_requests.discard(request_id)
        self.state.in_flight_requests = len(self._active_requests)

    async def wait_for_requests(self) -> bool:
        """Wait for all in-flight requests to complete.

        Returns:
            True if all requests completed, False if timeout reached
        """
        if not self._active_requests:
            return True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.shutdown_timeout
        logger.info(
            f"Waiting for {len(self._active_requests)} in-flight requests "
            f"(timeout: {self.shutdown_timeout}s)"
        )

        while self._active_requests:
            if loop.time() >= deadline:
                logger.warning(
                    f"Timeout waiting for requests, "
                    f"{len(self._active_requests)} still in flight"
                )
                return False
            await asyncio.sleep(0.1)
        return True

    async def shutdown_cache(self) -> bool:
        """Flush warm tasks, cancel breaker timers and disconnect Redis."""
        if self.cache is None:
            return True

        try:
            await self.cache.shutdown()
            return True
        except Exception as e:
            error_msg = f"Failed to shut down cache layer: {e}"
            logger.error(error_msg)
            self.state.errors.append(error_msg)
            return False

    async def close_databases(self) -> bool:
        """Close every database connection pool."""
        ok = True
        for database in self.databases:
            try:
                await database.disconnect()
            except Exception as e:
                error_msg = f"Failed to close database {database.name}: {e}"
                logger.error(error_msg)
                self.state.errors.append(error_msg)
                ok = False
        return ok

    async def shutdown(self) -> ShutdownState:
        """Execute graceful shutdown sequence.

        Idempotent; calling multiple times returns the existing
        ShutdownState without re-executing shutdown.
        """
        async with self._shutdown_lock:
            if self.state.phase in (ShutdownPhase.COMPLETE, ShutdownPhase.FAILED):
                return self.state

            self.state.phase = ShutdownPhase.SIGNAL_RECEIVED
            self.state.started_at = datetime.now(timezone.utc)
            logger.info("Starting graceful shutdown sequence")

            self.remove_signal_handlers()

            self.state.phase = ShutdownPhase.DRAINING_REQUESTS
            logger.info(f"Phase 1/3: Draining {len(self._active_requests)} requests")
            await self.wait_for_requests()

            self.state.phase = ShutdownPhase.FLUSHING_CACHE
            logger.info("Phase 2/3: Shutting down cache layer")
            await self.shutdown_cache()

            self.state.phase = ShutdownPhase.CLOSING_CONNECTIONS
            logger.info("Phase 3/3: Closing database connections")
            await self.close_databases()

            self.state.completed_at = datetime.now(timezone.utc)
            if self.state.errors:
                self.state.phase = ShutdownPhase.FAILED
                logger.warning(
                    f"Shutdown completed with {len(self.state.errors)} errors "
                    f"in {self.state.duration_seconds:.1f}s"
                )
            else:
                self.state.phase = ShutdownPhase.COMPLETE
                logger.info(
                    f"Graceful shutdown completed in {self.state.duration_seconds:.1f}s"
                )

            return self.state

    async def wait_for_shutdown(self) -> None:
        """Block until shutdown is requested."""
        await self._shutdown_event.wait()


def create_lifecycle_manager(
    cache: "CacheLayer | None" = None,
    databases: Sequence["Database"] = (),
    shutdown_timeout: float = 30.0,
) -> LifecycleManager:
    """Factory function to create a configured LifecycleManager."""
    return LifecycleManager(
        cache=cache,
        databases=databases,
        shutdown_timeout=shutdown_timeout,
    )
