"""Circuit breaker wrapping the try-cache-else-store call pattern."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from jobtracker.cache.models import CircuitBreakerStats
from jobtracker.core.exceptions import CacheMissError
from jobtracker.observability.logging import LogEvents, get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitBreaker:
    """Failure-counting breaker that makes every cache read fail safe.

    States:
        closed: Cache operation attempted first
        open: Cache skipped, fallback runs directly

    Pattern:
        closed -> (failure_count >= threshold) -> open
        open -> (reset_timeout_ms elapsed) -> closed, failure_count = 0

    There is no half-open probe: after the reset timer fires the next call
    simply tries the cache again. Cache misses count as failures just like
    backend errors; they are only logged at a lower level.

    The reset timer is an asyncio task owned by the breaker and cancelled
    by shutdown().
    """

    def __init__(
        self,
        threshold: int = 5,
        reset_timeout_ms: int = 60000,
        operation_timeout: float | None = None,
        name: str = "cache",
    ):
        """Initialize circuit breaker.

        Args:
            threshold: Failures before opening the circuit
            reset_timeout_ms: Milliseconds the circuit stays open
            operation_timeout: Seconds a cache operation may take before it
                counts as a failure (None = no bound beyond the client's own)
            name: Label for log lines
        """
        self.threshold = threshold
        self.reset_timeout_ms = reset_timeout_ms
        self.operation_timeout = operation_timeout
        self.name = name
        self.failure_count = 0
        self.success_count = 0
        self.is_open = False
        self._reset_task: asyncio.Task[None] | None = None

    async def execute_with_fallback(
        self,
        cache_op: Callable[[], Awaitable[T]],
        fallback_op: Callable[[], Awaitable[T]],
        context: str = "",
    ) -> T:
        """Run cache_op, or fallback_op when the circuit is open or cache_op fails.

        Args:
            cache_op: Cache read; raise CacheMissError on a miss
            fallback_op: Source-of-truth read
            context: Label for log lines (e.g. "get_hot_messages:g1")

        Returns:
            Result of whichever operation produced it

        Raises:
            Whatever fallback_op raises. Cache errors never escape.
        """
        if self.is_open:
            logger.info(LogEvents.CIRCUIT_BREAKER_BYPASS, breaker=self.name, context=context)
            return await fallback_op()

        try:
            if self.operation_timeout:
                result = await asyncio.wait_for(cache_op(), self.operation_timeout)
            else:
                result = await cache_op()
        except CacheMissError as e:
            logger.debug(LogEvents.CACHE_MISS, breaker=self.name, context=context, reason=str(e))
            self._record_failure()
        except Exception as e:
            logger.warning(
                LogEvents.CACHE_ERROR,
                breaker=self.name,
                context=context,
                error=str(e) or type(e).__name__,
            )
            self._record_failure()
        else:
            self.failure_count = 0
            self.success_count += 1
            return result

        logger.info(LogEvents.FALLBACK_USED, breaker=self.name, context=context)
        return await fallback_op()

    def _record_failure(self) -> None:
        self.failure_count += 1
        if not self.is_open and self.failure_count >= self.threshold:
            self._open_circuit()

    def _open_circuit(self) -> None:
        self.is_open = True
        logger.warning(
            LogEvents.CIRCUIT_BREAKER_OPENED,
            breaker=self.name,
            failures=self.failure_count,
            reset_timeout_ms=self.reset_timeout_ms,
        )
        self._cancel_reset_timer()
        self._reset_task = asyncio.create_task(
            self._close_after_timeout(), name=f"{self.name}-breaker-reset"
        )

    async def _close_after_timeout(self) -> None:
        await asyncio.sleep(self.reset_timeout_ms / 1000)
        self._reset_task = None
        self.close_circuit()

    def close_circuit(self) -> None:
        """Close the circuit and clear the failure counter."""
        self.is_open = False
        self.failure_count = 0
        logger.info(LogEvents.CIRCUIT_BREAKER_CLOSED, breaker=self.name)

    def _cancel_reset_timer(self) -> None:
        if self._reset_task is not None and not self._reset_task.done():
            self._reset_task.cancel()
        self._reset_task = None

    async def shutdown(self) -> None:
        """Cancel a pending reset timer."""
        task = self._reset_task
        self._cancel_reset_timer()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def get_stats(self) -> CircuitBreakerStats:
        """Current breaker state."""
        return CircuitBreakerStats(
            is_open=self.is_open,
            failure_count=self.failure_count,
            success_count=self.success_count,
            threshold=self.threshold,
            reset_timeout_ms=self.reset_timeout_ms,
        )
