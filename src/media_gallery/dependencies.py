"""Dependency wiring helpers."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .config import AppConfig
from .gallery.gallery_api import build_gallery_router
from .gallery.gallery_service import THUMBNAILS_URL_PREFIX, UPLOADS_URL_PREFIX, GalleryService
from .inventory.inventory_builder import InventoryBuilder
from .inventory.inventory_cache import InventoryCache
from .inventory.inventory_watcher import InventoryWatcher
from .media.archive_service import ArchiveService
from .media.thumbnail_service import ThumbnailService
from .uploads.upload_api import build_upload_router
from .uploads.upload_service import UploadService


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Build services, attach them to ``app.state`` and mount routes."""
    paths = config.media_paths
    builder = InventoryBuilder(paths.uploads, stat_concurrency=config.concurrency.inventory_stat)
    inventory_cache = InventoryCache(builder.build, debounce_seconds=config.watch_debounce_seconds)
    inventory_watcher = InventoryWatcher(paths.uploads, inventory_cache.schedule_invalidate)
    thumbnail_service = ThumbnailService(
        source_dir=paths.uploads,
        thumbnail_dir=paths.thumbnails,
        settings=config.thumbnails,
    )
    archive_service = ArchiveService(source_dir=paths.uploads, archive_dir=paths.archives)
    gallery_service = GalleryService(
        inventory_cache=inventory_cache,
        thumbnails=thumbnail_service,
        archives=archive_service,
        thumbnail_concurrency=config.concurrency.thumbnails,
    )
    upload_service = UploadService(
        upload_dir=paths.uploads,
        inventory_cache=inventory_cache,
        thumbnails=thumbnail_service,
        max_files=config.max_upload_files,
    )

    app.state.config = config
    app.state.inventory_cache = inventory_cache
    app.state.inventory_watcher = inventory_watcher
    app.state.thumbnail_service = thumbnail_service
    app.state.archive_service = archive_service
    app.state.gallery_service = gallery_service
    app.state.upload_service = upload_service

    @app.get("/api/health", tags=["health"])
    def health() -> dict[str, bool]:
        return {"ok": True}

    app.include_router(build_gallery_router(gallery_service))
    app.include_router(build_upload_router(upload_service))

    app.mount(UPLOADS_URL_PREFIX, StaticFiles(directory=paths.uploads), name="uploads")
    app.mount(THUMBNAILS_URL_PREFIX, StaticFiles(directory=paths.thumbnails), name="thumbnails")
    if paths.public is not None and paths.public.exists():
        app.mount("/", StaticFiles(directory=paths.public, html=True), name="public")
