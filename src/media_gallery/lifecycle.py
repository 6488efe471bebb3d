"""Lifespan hooks: start and stop the background pieces with the app."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .utils.atomic_files import sweep_stale_temp_files

logger = logging.getLogger(__name__)

STALE_TEMP_SECONDS = 300.0


async def sweep_temp_files(app: FastAPI, max_age_seconds: float = STALE_TEMP_SECONDS) -> list[str]:
    """Delete temp files an interrupted build or upload left behind."""
    paths = app.state.config.media_paths
    removed: list[str] = []
    for directory in (paths.uploads, paths.thumbnails, paths.archives):
        try:
            removed.extend(await asyncio.to_thread(sweep_stale_temp_files, directory, max_age_seconds))
        except OSError:
            logger.exception("media.sweep.failed", extra={"directory": str(directory)})
    if removed:
        logger.info("media.sweep.completed", extra={"removed": removed})
    return removed


async def start_background(app: FastAPI) -> None:
    """Sweep leftover temp files and start the change watcher when enabled."""
    await sweep_temp_files(app)
    config = app.state.config
    watcher = app.state.inventory_watcher
    if not config.watch_enabled:
        logger.info("inventory.watch.disabled")
        return
    watcher.start(asyncio.get_running_loop())


async def stop_background(app: FastAPI) -> None:
    """Stop the watcher, drop pending timers and wait for background jobs."""
    app.state.inventory_watcher.stop()
    app.state.inventory_cache.close()
    await app.state.upload_service.wait_background()
    await app.state.archive_service.wait_background()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await start_background(app)
    try:
        yield
    finally:
        await stop_background(app)


__all__ = ["lifespan", "start_background", "stop_background", "sweep_temp_files"]
