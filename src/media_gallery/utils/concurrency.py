"""Bounded fan-out helper for I/O-bound coroutines."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

__all__ = ["map_concurrent"]


async def map_concurrent(
    items: Sequence[T],
    concurrency: int,
    fn: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Apply ``fn`` to every item with at most ``concurrency`` calls in flight.

    Results keep the input order regardless of completion order. Workers pull
    the next index from a shared cursor until the sequence is exhausted.

    The first exception raised by ``fn`` cancels the remaining workers and is
    re-raised to the caller; callers that want per-item tolerance must catch
    inside ``fn``.
    """
    if not items:
        return []
    width = max(1, min(int(concurrency), len(items)))
    results: list[R | None] = [None] * len(items)
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            results[index] = await fn(items[index])

    workers = [asyncio.create_task(worker()) for _ in range(width)]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise
    return results  # type: ignore[return-value]
