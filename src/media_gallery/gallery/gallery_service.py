"""Listing pages and bulk-download preparation."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Iterator
from urllib.parse import quote

from ..domain.models import MediaKind, MediaRecord
from ..inventory.inventory_cache import InventoryCache
from ..media.archive_service import ArchiveArtifact, ArchiveService, etag_for, etag_matches
from ..media.thumbnail_service import ThumbnailService
from ..utils.concurrency import map_concurrent

DEFAULT_LIMIT = 50
MAX_LIMIT = 200
STREAM_CHUNK_SIZE = 64 * 1024
UPLOADS_URL_PREFIX = "/uploads"
THUMBNAILS_URL_PREFIX = "/thumbnails"


def clamp_page(offset: int | None, limit: int | None) -> tuple[int, int]:
    """Normalise listing parameters: ``offset >= 0`` and ``1 <= limit <= 200``."""
    offset = max(0, offset or 0)
    limit = min(MAX_LIMIT, max(1, limit or DEFAULT_LIMIT))
    return offset, limit


def media_url(name: str) -> str:
    return f"{UPLOADS_URL_PREFIX}/{quote(name)}"


def preview_url(thumbnail: str | None) -> str | None:
    if thumbnail is None:
        return None
    return f"{THUMBNAILS_URL_PREFIX}/{quote(thumbnail)}"


@dataclass(slots=True)
class ArchiveDownload:
    """Outcome of a bulk-download request.

    ``handle`` is ``None`` when the client's cached copy is still current.
    """

    etag: str
    artifact: ArchiveArtifact | None = None
    handle: BinaryIO | None = None
    size: int = 0

    @property
    def not_modified(self) -> bool:
        return self.handle is None

    def iter_chunks(self, chunk_size: int = STREAM_CHUNK_SIZE) -> Iterator[bytes]:
        if self.handle is None:
            return
        try:
            while True:
                chunk = self.handle.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.handle.close()


@dataclass(slots=True)
class GalleryService:
    """Assemble listing pages and archive downloads from the shared caches."""

    inventory_cache: InventoryCache
    thumbnails: ThumbnailService
    archives: ArchiveService
    thumbnail_concurrency: int = 4
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    async def list_page(self, offset: int, limit: int) -> dict[str, Any]:
        inventory = await self.inventory_cache.get_inventory()
        records, next_offset = inventory.page(offset, limit)
        previews = await map_concurrent(records, self.thumbnail_concurrency, self._preview_for)
        return {
            "items": [self._record_to_item(record, preview) for record, preview in zip(records, previews)],
            "nextOffset": next_offset,
            "total": inventory.total,
        }

    async def _preview_for(self, record: MediaRecord) -> str | None:
        if record.kind is not MediaKind.IMAGE:
            return None
        return await self.thumbnails.ensure_thumbnail(record.name)

    @staticmethod
    def _record_to_item(record: MediaRecord, thumbnail: str | None) -> dict[str, Any]:
        return {
            "name": record.name,
            "url": media_url(record.name),
            "type": record.kind.value,
            "mime": record.mime,
            "size": record.size,
            "mtime": record.mtime_ms,
            "previewUrl": preview_url(thumbnail),
        }

    async def prepare_download(self, if_none_match: str | None = None) -> ArchiveDownload:
        """Resolve the current archive and open it for streaming.

        The artifact is opened before any response is started; a matching
        ``If-None-Match`` short-circuits without building anything.
        """
        inventory = await self.inventory_cache.get_inventory()
        etag = etag_for(self.archives.signature_for(inventory))
        if etag_matches(if_none_match, etag):
            return ArchiveDownload(etag=etag)

        artifact = await self.archives.ensure_archive(inventory)
        try:
            handle, size = await asyncio.to_thread(_open_for_streaming, artifact)
        except FileNotFoundError:
            # Pruned by a concurrent build between install and open.
            self.log.info("archive.reopen", extra={"signature": artifact.signature})
            artifact = await self.archives.ensure_archive(inventory)
            handle, size = await asyncio.to_thread(_open_for_streaming, artifact)
        return ArchiveDownload(etag=artifact.etag, artifact=artifact, handle=handle, size=size)


def _open_for_streaming(artifact: ArchiveArtifact) -> tuple[BinaryIO, int]:
    handle = artifact.path.open("rb")
    return handle, os.fstat(handle.fileno()).st_size
