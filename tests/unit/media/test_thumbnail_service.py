from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from PIL import Image

from media_gallery.config import AppConfig, ThumbnailSettings
from media_gallery.media.thumbnail_service import ThumbnailService, thumbnail_name
from tests.helpers.media_files import write_image, write_media


def _service(config: AppConfig, settings: ThumbnailSettings | None = None) -> ThumbnailService:
    return ThumbnailService(
        source_dir=config.media_paths.uploads,
        thumbnail_dir=config.media_paths.thumbnails,
        settings=settings or config.thumbnails,
    )


@pytest.mark.unit
def test_thumbnail_name_is_derived_from_source() -> None:
    assert thumbnail_name("cake.png") == "cake.png.thumb.jpg"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_generates_jpeg_inside_bounding_box(config: AppConfig, upload_dir: Path) -> None:
    write_image(upload_dir, "wide.jpg", (1000, 500))
    service = _service(config)

    name = await service.ensure_thumbnail("wide.jpg")

    assert name == "wide.jpg.thumb.jpg"
    with Image.open(config.media_paths.thumbnails / name) as thumb:
        assert thumb.format == "JPEG"
        assert thumb.size == (480, 240)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_small_images_are_not_upscaled(config: AppConfig, upload_dir: Path) -> None:
    write_image(upload_dir, "tiny.jpg", (40, 20))

    name = await _service(config).ensure_thumbnail("tiny.jpg")

    with Image.open(config.media_paths.thumbnails / name) as thumb:
        assert thumb.size == (40, 20)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exif_orientation_is_applied(config: AppConfig, upload_dir: Path) -> None:
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 CW on display
    write_image(upload_dir, "portrait.jpg", (200, 100), exif=exif)
    service = _service(config, settings=ThumbnailSettings(max_width=480, max_height=480, quality=70))

    name = await service.ensure_thumbnail("portrait.jpg")

    with Image.open(config.media_paths.thumbnails / name) as thumb:
        assert thumb.size == (100, 200)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_existing_thumbnail_is_reused(
    config: AppConfig, upload_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    write_image(upload_dir, "cached.jpg")
    write_media(config.media_paths.thumbnails, "cached.jpg.thumb.jpg", b"previous")
    renders: list[Path] = []
    monkeypatch.setattr(ThumbnailService, "_render", lambda self, source, target: renders.append(source))

    name = await _service(config).ensure_thumbnail("cached.jpg")

    assert name == "cached.jpg.thumb.jpg"
    assert renders == []
    assert (config.media_paths.thumbnails / name).read_bytes() == b"previous"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_requests_render_once(
    config: AppConfig, upload_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    write_image(upload_dir, "busy.jpg", (300, 300))
    original = ThumbnailService._render
    renders: list[str] = []

    def counting_render(self, source: Path, target: Path) -> None:
        renders.append(source.name)
        original(self, source, target)

    monkeypatch.setattr(ThumbnailService, "_render", counting_render)
    service = _service(config)

    names = await asyncio.gather(*(service.ensure_thumbnail("busy.jpg") for _ in range(8)))

    assert names == ["busy.jpg.thumb.jpg"] * 8
    assert renders == ["busy.jpg"]
    assert len(service.jobs) == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_corrupt_source_yields_none(config: AppConfig, upload_dir: Path) -> None:
    write_media(upload_dir, "broken.jpg", b"definitely not a jpeg")
    service = _service(config)

    assert await service.ensure_thumbnail("broken.jpg") is None
    assert not (config.media_paths.thumbnails / "broken.jpg.thumb.jpg").exists()
    assert [path.name for path in config.media_paths.thumbnails.iterdir()] == []
    assert len(service.jobs) == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_source_yields_none(config: AppConfig) -> None:
    assert await _service(config).ensure_thumbnail("nowhere.jpg") is None
