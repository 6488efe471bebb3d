"""On-demand JPEG previews for image uploads."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image, ImageOps

from ..config import ThumbnailSettings
from ..utils.atomic_files import atomic_write
from ..utils.inflight import InFlightTable

THUMBNAIL_SUFFIX = ".thumb.jpg"


def thumbnail_name(source_name: str) -> str:
    return f"{source_name}{THUMBNAIL_SUFFIX}"


@dataclass(slots=True)
class ThumbnailService:
    """Produce and cache one thumbnail per source file.

    An existing thumbnail file is trusted as-is; it is not compared with the
    current source bytes, so replacing a source under the same name keeps the
    old preview until the thumbnail file is removed.
    """

    source_dir: Path
    thumbnail_dir: Path
    settings: ThumbnailSettings
    jobs: InFlightTable[str, str | None] = field(default_factory=lambda: InFlightTable("thumbnails"))
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def thumbnail_path(self, source_name: str) -> Path:
        return self.thumbnail_dir / thumbnail_name(source_name)

    async def ensure_thumbnail(self, source_name: str) -> str | None:
        """Return the thumbnail file name for ``source_name`` or ``None``.

        Concurrent calls for the same source share one job. Decode and encode
        failures are logged and reported as ``None``.
        """
        return await self.jobs.run(source_name, lambda: self._produce(source_name))

    async def _produce(self, source_name: str) -> str | None:
        target = self.thumbnail_path(source_name)
        try:
            if await asyncio.to_thread(target.is_file):
                return target.name
            await asyncio.to_thread(self._render, self.source_dir / source_name, target)
        except Exception as exc:
            self.log.warning(
                "thumbnail.generate.failed",
                extra={"source": source_name, "error": repr(exc)},
            )
            return None
        self.log.debug("thumbnail.generate.completed", extra={"source": source_name})
        return target.name

    def _render(self, source: Path, target: Path) -> None:
        with Image.open(source) as image:
            image = ImageOps.exif_transpose(image)
            if image.mode != "RGB":
                image = image.convert("RGB")
            image.thumbnail((self.settings.max_width, self.settings.max_height), Image.LANCZOS)
            with atomic_write(target) as handle:
                image.save(handle, format="JPEG", quality=self.settings.quality, optimize=True)
