"""Directory scan producing an :class:`Inventory` snapshot."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
from dataclasses import dataclass, field
from pathlib import Path

from ..domain.models import Inventory, MediaKind, MediaRecord, sort_records
from ..exceptions import InventoryUnavailableError
from ..utils.concurrency import map_concurrent

DEFAULT_MIME = "application/octet-stream"


def guess_mime(name: str) -> str:
    mime, _ = mimetypes.guess_type(name, strict=False)
    return mime or DEFAULT_MIME


@dataclass(slots=True)
class InventoryBuilder:
    """Scan the upload directory into an ordered, immutable snapshot."""

    directory: Path
    stat_concurrency: int = 32
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    async def build(self, generation: int = 0) -> Inventory:
        """List, stat and classify every regular file in ``directory``.

        A file that disappears or cannot be stat'ed during the scan is
        dropped; only an unreadable directory fails the build.
        """
        try:
            names = await asyncio.to_thread(self._list_regular_files)
        except OSError as exc:
            raise InventoryUnavailableError(f"cannot list {self.directory}: {exc}") from exc

        records = await map_concurrent(names, self.stat_concurrency, self._stat_record)
        inventory = Inventory(
            generation=generation,
            records=sort_records(record for record in records if record is not None),
        )
        self.log.debug(
            "inventory.scan.completed",
            extra={"generation": generation, "files": inventory.total, "dropped": len(names) - inventory.total},
        )
        return inventory

    def _list_regular_files(self) -> list[str]:
        with os.scandir(self.directory) as entries:
            return [
                entry.name
                for entry in entries
                if not entry.name.startswith(".") and entry.is_file(follow_symlinks=False)
            ]

    async def _stat_record(self, name: str) -> MediaRecord | None:
        try:
            stat = await asyncio.to_thread(os.stat, self.directory / name)
        except OSError as exc:
            self.log.debug("inventory.stat.skipped", extra={"source": name, "error": str(exc)})
            return None
        mime = guess_mime(name)
        return MediaRecord(
            name=name,
            size=stat.st_size,
            mtime=stat.st_mtime,
            mime=mime,
            kind=MediaKind.from_mime(mime),
        )
