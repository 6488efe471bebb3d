"""Persist uploaded files into the media directory."""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from fastapi import UploadFile

from ..domain.models import MediaKind
from ..exceptions import InvalidMediaNameError, MediaNotFoundError, UploadRejectedError
from ..inventory.inventory_builder import guess_mime
from ..inventory.inventory_cache import InventoryCache
from ..media.thumbnail_service import ThumbnailService
from ..utils.atomic_files import atomic_write, remove_quietly

CHUNK_SIZE = 1 * 1024 * 1024  # 1 MiB

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.\-\s]")
_WHITESPACE = re.compile(r"\s+")


def upload_timestamp(now: datetime) -> str:
    """ISO-8601 UTC timestamp with ``:`` and ``.`` replaced by ``-``."""
    now = now.astimezone(timezone.utc)
    iso = now.strftime("%Y-%m-%dT%H:%M:%S") + f".{now.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def safe_upload_name(original: str | None, now: datetime) -> str:
    """Derive the stored name ``<base>__<timestamp><ext>`` for an upload.

    >>> safe_upload_name("my photo (1).JPG", datetime(2024, 5, 1, 12, 30, 5, 250000, tzinfo=timezone.utc))
    'my_photo__1___2024-05-01T12-30-05-250Z.JPG'
    """
    cleaned = _UNSAFE_CHARS.sub("_", os.path.basename(original or "") or "upload")
    base, ext = os.path.splitext(cleaned)
    base = base.lstrip(".") or "upload"
    return _WHITESPACE.sub("_", f"{base}__{upload_timestamp(now)}{ext}")


def validate_media_name(name: str) -> str:
    """Reject names that are empty, hidden or carry path separators."""
    separators = {"/", "\\", os.sep} | ({os.altsep} if os.altsep else set())
    if not name or name.startswith(".") or any(sep in name for sep in separators) or "\0" in name:
        raise InvalidMediaNameError(f"invalid media name {name!r}")
    return name


@dataclass(slots=True)
class UploadService:
    """Write uploads atomically, delete media, and invalidate the inventory."""

    upload_dir: Path
    inventory_cache: InventoryCache
    thumbnails: ThumbnailService | None = None
    max_files: int = 100
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    _reserved: set[str] = field(default_factory=set, init=False, repr=False)
    _background: set[asyncio.Task[str | None]] = field(default_factory=set, init=False, repr=False)

    async def store_uploads(self, files: Sequence[UploadFile], *, now: datetime | None = None) -> list[str]:
        if len(files) > self.max_files:
            raise UploadRejectedError(f"at most {self.max_files} files per request")
        stored: list[str] = []
        try:
            for upload in files:
                target = self._reserve_target(safe_upload_name(upload.filename, now or datetime.now(timezone.utc)))
                try:
                    with atomic_write(target) as sink:
                        while True:
                            chunk = await upload.read(CHUNK_SIZE)
                            if not chunk:
                                break
                            sink.write(chunk)
                finally:
                    self._reserved.discard(target.name)
                stored.append(target.name)
                self.log.info(
                    "upload.stored",
                    extra={"original": upload.filename, "stored": target.name},
                )
        finally:
            if stored:
                self.on_uploaded(stored)
        return stored

    def on_uploaded(self, names: Sequence[str]) -> None:
        """Upload-completion hook: invalidate the inventory and warm previews."""
        generation = self.inventory_cache.invalidate()
        self.log.debug("upload.invalidated", extra={"files": list(names), "generation": generation})
        if self.thumbnails is None:
            return
        for name in names:
            if MediaKind.from_mime(guess_mime(name)) is not MediaKind.IMAGE:
                continue
            task = asyncio.ensure_future(self.thumbnails.ensure_thumbnail(name))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def delete_media(self, name: str) -> None:
        """Remove an upload and its thumbnail, then invalidate the inventory."""
        validate_media_name(name)
        target = self.upload_dir / name
        if not await asyncio.to_thread(target.is_file):
            raise MediaNotFoundError(f"media {name!r} not found")
        try:
            await asyncio.to_thread(os.remove, target)
        except FileNotFoundError as exc:
            raise MediaNotFoundError(f"media {name!r} not found") from exc
        if self.thumbnails is not None:
            await asyncio.to_thread(remove_quietly, self.thumbnails.thumbnail_path(name))
        generation = self.inventory_cache.invalidate()
        self.log.info("media.deleted", extra={"media": name, "generation": generation})

    async def wait_background(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _reserve_target(self, name: str) -> Path:
        """Pick a free name and hold it until the write completes.

        Reserved names cover concurrent requests whose temp files have not
        been renamed into place yet.
        """
        target = self.upload_dir / name
        base, ext = os.path.splitext(name)
        counter = 1
        while target.name in self._reserved or target.exists():
            target = self.upload_dir / f"{base}-{counter}{ext}"
            counter += 1
        self._reserved.add(target.name)
        return target
