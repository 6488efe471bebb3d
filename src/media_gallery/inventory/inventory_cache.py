"""Generation-counted cache over :class:`InventoryBuilder` scans."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..domain.models import Inventory

logger = logging.getLogger(__name__)

ScanFn = Callable[[int], Awaitable[Inventory]]


class InventoryCache:
    """Serve the current inventory, rebuilding it at most once per generation.

    Validity is the pair ``(generation, cached inventory)``: a cached snapshot
    is served only while its generation equals the counter. Concurrent callers
    that miss share a single rebuild task. A rebuild that finishes after a
    newer invalidation is handed to its own waiters but never published.
    """

    def __init__(self, scan: ScanFn, *, debounce_seconds: float = 0.05) -> None:
        self._scan = scan
        self._debounce_seconds = max(0.0, float(debounce_seconds))
        self._generation = 0
        self._cached: Inventory | None = None
        self._pending: tuple[int, asyncio.Task[Inventory]] | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def invalidation_pending(self) -> bool:
        return self._timer is not None

    async def get_inventory(self) -> Inventory:
        cached = self._cached
        if cached is not None and cached.generation == self._generation:
            return cached

        pending = self._pending
        if pending is None or pending[0] != self._generation:
            pending = (self._generation, asyncio.ensure_future(self._rebuild(self._generation)))
            self._pending = pending
        return await asyncio.shield(pending[1])

    async def _rebuild(self, generation: int) -> Inventory:
        try:
            inventory = await self._scan(generation)
        except Exception:
            logger.exception("inventory.rebuild.failed", extra={"generation": generation})
            raise
        finally:
            if self._pending is not None and self._pending[0] == generation:
                self._pending = None

        if generation == self._generation:
            self._cached = inventory
            logger.info(
                "inventory.rebuild.completed",
                extra={"generation": generation, "files": inventory.total},
            )
        else:
            logger.info(
                "inventory.rebuild.discarded",
                extra={"generation": generation, "current_generation": self._generation},
            )
        return inventory

    def invalidate(self) -> int:
        """Bump the generation immediately and drop the cached snapshot."""
        self._cancel_timer()
        self._generation += 1
        self._cached = None
        logger.debug("inventory.invalidated", extra={"generation": self._generation})
        return self._generation

    def schedule_invalidate(self) -> None:
        """Debounced :meth:`invalidate` for bursts of change notifications.

        Every call restarts the quiet-period timer; the bump happens once the
        burst has been silent for ``debounce_seconds``. Must be called from
        the event loop thread.
        """
        loop = asyncio.get_running_loop()
        self._cancel_timer()
        self._timer = loop.call_later(self._debounce_seconds, self._fire_timer)

    def _fire_timer(self) -> None:
        self._timer = None
        self.invalidate()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self) -> None:
        self._cancel_timer()
