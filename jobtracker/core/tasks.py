"""Detached background tasks for fire-and-forget work such as cache warming."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Owns fire-and-forget asyncio tasks.

    The event loop only keeps weak references to tasks, so spawned tasks are
    held here until they finish. Failures are logged and never propagated to
    whoever spawned the task; nothing is retried.

    Example:
        >>> tasks = BackgroundTasks()
        >>> tasks.spawn(cache.cache_messages(messages, group_id), name="warm:g1")
        >>> ...
        >>> await tasks.drain(timeout=5.0)
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    def spawn(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Schedule a coroutine without awaiting it."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Background task {task.get_name()} failed: {exc}")

    async def drain(self, timeout: float = 5.0) -> int:
        """Wait for pending tasks, cancelling whatever is left after `timeout`.

        Returns:
            Number of tasks that had to be cancelled
        """
        if not self._tasks:
            return 0

        _, still_pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)
            logger.warning(f"Cancelled {len(still_pending)} background tasks at shutdown")
        return len(still_pending)
