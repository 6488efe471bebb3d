"""Filesystem change notifications feeding :class:`InventoryCache`."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable

from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

RELEVANT_EVENTS = (FileCreatedEvent, FileDeletedEvent, FileMovedEvent, FileModifiedEvent)


class _InvalidateOnChange(FileSystemEventHandler):
    """Forward relevant observer events to the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, notify: Callable[[], None]) -> None:
        super().__init__()
        self._loop = loop
        self._notify = notify

    def on_any_event(self, event: FileSystemEvent) -> None:
        if not isinstance(event, RELEVANT_EVENTS):
            return
        try:
            self._loop.call_soon_threadsafe(self._notify)
        except RuntimeError:
            # Loop already closed during shutdown.
            logger.debug("inventory.watch.loop_closed", extra={"event": event.event_type})


class InventoryWatcher:
    """Watch the upload directory and request debounced invalidations.

    The watcher only shortens staleness: every cache read revalidates on its
    own and uploads invalidate explicitly, so a missed or failed notification
    never affects correctness. Errors are logged and the process continues.
    """

    def __init__(self, directory: Path, notify: Callable[[], None]) -> None:
        self.directory = directory
        self._notify = notify
        self._observer: Observer | None = None

    @property
    def running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> bool:
        if self._observer is not None:
            return True
        loop = loop or asyncio.get_running_loop()
        handler = _InvalidateOnChange(loop, self._safe_notify)
        observer = Observer()
        observer.daemon = True
        try:
            observer.schedule(handler, str(self.directory), recursive=False)
            observer.start()
        except Exception:
            logger.exception("inventory.watch.start_failed", extra={"directory": str(self.directory)})
            return False
        self._observer = observer
        logger.info("inventory.watch.started", extra={"directory": str(self.directory)})
        return True

    def _safe_notify(self) -> None:
        try:
            self._notify()
        except Exception:
            logger.exception("inventory.watch.notify_failed")

    def stop(self, timeout: float = 2.0) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        try:
            observer.stop()
            observer.join(timeout)
        except Exception:
            logger.exception("inventory.watch.stop_failed")
