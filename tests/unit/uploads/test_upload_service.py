from __future__ import annotations

import asyncio
import io
from datetime import datetime, timezone
from pathlib import Path

import pytest
from fastapi import UploadFile
from PIL import Image

from media_gallery.config import AppConfig
from media_gallery.domain.models import Inventory
from media_gallery.exceptions import InvalidMediaNameError, MediaNotFoundError, UploadRejectedError
from media_gallery.inventory.inventory_cache import InventoryCache
from media_gallery.media.thumbnail_service import ThumbnailService
from media_gallery.uploads.upload_service import (
    UploadService,
    safe_upload_name,
    upload_timestamp,
    validate_media_name,
)
from tests.helpers.media_files import write_media

NOW = datetime(2024, 5, 1, 12, 30, 5, 250000, tzinfo=timezone.utc)


async def _empty_scan(generation: int) -> Inventory:
    return Inventory(generation=generation)


def _upload(name: str | None, data: bytes) -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=name)


@pytest.mark.unit
def test_upload_timestamp_format() -> None:
    assert upload_timestamp(NOW) == "2024-05-01T12-30-05-250Z"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("original", "expected"),
    [
        ("cake.jpg", "cake__2024-05-01T12-30-05-250Z.jpg"),
        ("my photo (1).JPG", "my_photo__1___2024-05-01T12-30-05-250Z.JPG"),
        ("../../etc/passwd", "passwd__2024-05-01T12-30-05-250Z"),
        (".hidden", "hidden__2024-05-01T12-30-05-250Z"),
        (None, "upload__2024-05-01T12-30-05-250Z"),
        ("тост.mp4", "______2024-05-01T12-30-05-250Z.mp4"),
    ],
)
def test_safe_upload_name(original: str | None, expected: str) -> None:
    assert safe_upload_name(original, NOW) == expected


@pytest.mark.unit
@pytest.mark.asyncio
async def test_store_uploads_writes_files_and_invalidates(upload_dir: Path) -> None:
    cache = InventoryCache(_empty_scan)
    service = UploadService(upload_dir=upload_dir, inventory_cache=cache)

    stored = await service.store_uploads(
        [_upload("a.jpg", b"first"), _upload("a.jpg", b"second")],
        now=NOW,
    )

    assert stored == ["a__2024-05-01T12-30-05-250Z.jpg", "a__2024-05-01T12-30-05-250Z-1.jpg"]
    assert (upload_dir / stored[0]).read_bytes() == b"first"
    assert (upload_dir / stored[1]).read_bytes() == b"second"
    assert cache.generation == 1
    assert not [path for path in upload_dir.iterdir() if path.name.endswith(".tmp")]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_store_uploads_rejects_too_many_files(upload_dir: Path) -> None:
    cache = InventoryCache(_empty_scan)
    service = UploadService(upload_dir=upload_dir, inventory_cache=cache, max_files=1)

    with pytest.raises(UploadRejectedError):
        await service.store_uploads([_upload("a.jpg", b"1"), _upload("b.jpg", b"2")])

    assert list(upload_dir.iterdir()) == []
    assert cache.generation == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_empty_upload_does_not_invalidate(upload_dir: Path) -> None:
    cache = InventoryCache(_empty_scan)
    service = UploadService(upload_dir=upload_dir, inventory_cache=cache)

    assert await service.store_uploads([]) == []
    assert cache.generation == 0


class _SlowUpload:
    """Upload stub that yields to the loop between chunks."""

    def __init__(self, filename: str, chunks: list[bytes]) -> None:
        self.filename = filename
        self._chunks = list(chunks)

    async def read(self, size: int = -1) -> bytes:
        await asyncio.sleep(0.01)
        return self._chunks.pop(0) if self._chunks else b""


def _thumbnails(config: AppConfig) -> ThumbnailService:
    paths = config.media_paths
    return ThumbnailService(paths.uploads, paths.thumbnails, config.thumbnails)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_uploads_with_same_name_keep_both_files(upload_dir: Path) -> None:
    service = UploadService(upload_dir=upload_dir, inventory_cache=InventoryCache(_empty_scan))

    first, second = await asyncio.gather(
        service.store_uploads([_SlowUpload("same.bin", [b"alpha-1", b"alpha-2"])], now=NOW),
        service.store_uploads([_SlowUpload("same.bin", [b"beta-1", b"beta-2"])], now=NOW),
    )

    assert first != second
    contents = {(upload_dir / name).read_bytes() for name in first + second}
    assert contents == {b"alpha-1alpha-2", b"beta-1beta-2"}
    assert not service._reserved


@pytest.mark.unit
@pytest.mark.asyncio
async def test_image_uploads_warm_thumbnails(config: AppConfig, upload_dir: Path) -> None:
    buffer = io.BytesIO()
    Image.new("RGB", (64, 64), (10, 20, 30)).save(buffer, format="JPEG")
    service = UploadService(
        upload_dir=upload_dir,
        inventory_cache=InventoryCache(_empty_scan),
        thumbnails=_thumbnails(config),
    )

    stored = await service.store_uploads(
        [_upload("pic.jpg", buffer.getvalue()), _upload("notes.txt", b"text")],
        now=NOW,
    )
    await service.wait_background()

    thumbs = sorted(path.name for path in config.media_paths.thumbnails.iterdir())
    assert thumbs == [f"{stored[0]}.thumb.jpg"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_media_removes_file_and_thumbnail(config: AppConfig, upload_dir: Path) -> None:
    write_media(upload_dir, "gone.jpg")
    write_media(config.media_paths.thumbnails, "gone.jpg.thumb.jpg")
    cache = InventoryCache(_empty_scan)
    service = UploadService(upload_dir=upload_dir, inventory_cache=cache, thumbnails=_thumbnails(config))

    await service.delete_media("gone.jpg")

    assert not (upload_dir / "gone.jpg").exists()
    assert not (config.media_paths.thumbnails / "gone.jpg.thumb.jpg").exists()
    assert cache.generation == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_media_without_thumbnail(config: AppConfig, upload_dir: Path) -> None:
    write_media(upload_dir, "clip.mp4")
    service = UploadService(
        upload_dir=upload_dir,
        inventory_cache=InventoryCache(_empty_scan),
        thumbnails=_thumbnails(config),
    )

    await service.delete_media("clip.mp4")

    assert not (upload_dir / "clip.mp4").exists()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_missing_media_raises(upload_dir: Path) -> None:
    cache = InventoryCache(_empty_scan)
    service = UploadService(upload_dir=upload_dir, inventory_cache=cache)

    with pytest.raises(MediaNotFoundError):
        await service.delete_media("nothing.jpg")
    assert cache.generation == 0


@pytest.mark.unit
@pytest.mark.parametrize("name", ["", ".hidden", "../escape.jpg", "nested/file.jpg", "back\\slash.jpg"])
def test_validate_media_name_rejects_unsafe(name: str) -> None:
    with pytest.raises(InvalidMediaNameError):
        validate_media_name(name)
