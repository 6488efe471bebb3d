"""Per-key table of shared in-flight work."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
R = TypeVar("R")

logger = logging.getLogger(__name__)

__all__ = ["InFlightTable"]


class InFlightTable(Generic[K, R]):
    """Coalesce concurrent requests for the same key into one task.

    The first caller for ``key`` starts ``factory()`` as a task; later callers
    await that same task until it settles. The entry is removed on settlement,
    success or failure, so a failed job is retried by the next caller.

    Waiters are shielded: cancelling one caller never cancels the shared
    task, other waiters still receive its result.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._tasks: dict[K, asyncio.Task[R]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def pending(self, key: K) -> asyncio.Task[R] | None:
        return self._tasks.get(key)

    def start(self, key: K, factory: Callable[[], Awaitable[R]]) -> asyncio.Task[R]:
        """Return the task for ``key``, creating it when none is in flight."""
        task = self._tasks.get(key)
        if task is not None:
            return task
        task = asyncio.ensure_future(factory())
        self._tasks[key] = task
        task.add_done_callback(lambda done, key=key: self._settle(key, done))
        logger.debug("inflight.started", extra={"table": self.name, "key": key})
        return task

    async def run(self, key: K, factory: Callable[[], Awaitable[R]]) -> R:
        return await asyncio.shield(self.start(key, factory))

    def _settle(self, key: K, task: asyncio.Task[R]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled() and task.exception() is not None:
            # Retrieve the exception so an unawaited failure is not reported twice.
            logger.debug("inflight.failed", extra={"table": self.name, "key": key})
