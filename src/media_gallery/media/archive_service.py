"""Content-addressed zip bundles of the whole upload directory."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import formatdate
from pathlib import Path
from typing import Iterable

from ..domain.models import Inventory, MediaRecord
from ..exceptions import ArchiveBuildError
from ..utils.atomic_files import publish_atomically
from ..utils.inflight import InFlightTable

ARCHIVE_PREFIX = "media-"
ARCHIVE_SUFFIX = ".zip"
ARCHIVE_CACHE_CONTROL = "public, max-age=0, must-revalidate"


def archive_signature(records: Iterable[MediaRecord]) -> str:
    """Hash the ``(name, size, mtime)`` identity of a file set.

    Records are hashed in name order, so the result does not depend on the
    order the caller passes them in. Modification times are rounded to whole
    milliseconds.
    """
    digest = hashlib.sha1()
    for record in sorted(records, key=lambda item: item.name):
        digest.update(record.name.encode("utf-8"))
        digest.update(b"\0")
        digest.update(str(record.size).encode("ascii"))
        digest.update(b"\0")
        digest.update(str(round(record.mtime_ms)).encode("ascii"))
        digest.update(b"\n")
    return digest.hexdigest()


def archive_name(signature: str) -> str:
    return f"{ARCHIVE_PREFIX}{signature}{ARCHIVE_SUFFIX}"


def etag_for(signature: str) -> str:
    return f'"{signature}"'


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    """Evaluate an ``If-None-Match`` header against ``etag``."""
    if not if_none_match:
        return False
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == etag:
            return True
    return False


@dataclass(frozen=True, slots=True)
class ArchiveArtifact:
    """A completed archive on disk, addressed by its signature."""

    signature: str
    path: Path
    size: int
    mtime: float

    @property
    def etag(self) -> str:
        return etag_for(self.signature)

    @property
    def last_modified(self) -> str:
        return formatdate(self.mtime, usegmt=True)

    def download_name(self, now: datetime | None = None) -> str:
        stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
        return f"{ARCHIVE_PREFIX}{stamp}{ARCHIVE_SUFFIX}"


@dataclass(slots=True)
class ArchiveService:
    """Build or reuse the zip bundle matching an inventory snapshot.

    Only one artifact is kept: after a successful build every other
    ``media-*.zip`` in the store is deleted in the background.
    """

    source_dir: Path
    archive_dir: Path
    compress_level: int = 9
    builds: InFlightTable[str, ArchiveArtifact] = field(default_factory=lambda: InFlightTable("archives"))
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    _current: str | None = field(default=None, init=False, repr=False)
    _background: set[asyncio.Task[list[str]]] = field(default_factory=set, init=False, repr=False)

    def artifact_path(self, signature: str) -> Path:
        return self.archive_dir / archive_name(signature)

    def signature_for(self, inventory: Inventory) -> str:
        return archive_signature(inventory.records)

    async def ensure_archive(self, inventory: Inventory) -> ArchiveArtifact:
        """Return the artifact for ``inventory``, building it when missing."""
        records = inventory.by_name()
        signature = archive_signature(records)
        return await self.builds.run(signature, lambda: self._ensure(signature, records))

    async def _ensure(self, signature: str, records: tuple[MediaRecord, ...]) -> ArchiveArtifact:
        target = self.artifact_path(signature)
        existing = await asyncio.to_thread(self._stat_artifact, signature, target)
        if existing is not None:
            self.log.debug("archive.reused", extra={"signature": signature})
            self._current = target.name
            return existing

        try:
            skipped = await asyncio.to_thread(self._build, target, records)
            artifact = await asyncio.to_thread(self._stat_artifact, signature, target)
        except (OSError, ValueError) as exc:
            self.log.exception("archive.build.failed", extra={"signature": signature})
            raise ArchiveBuildError(f"failed to build {target.name}: {exc}") from exc
        if artifact is None:
            raise ArchiveBuildError(f"archive {target.name} vanished after build")

        self.log.info(
            "archive.build.completed",
            extra={
                "signature": signature,
                "files": len(records) - len(skipped),
                "skipped": skipped,
                "bytes": artifact.size,
            },
        )
        self._current = target.name
        self._schedule_prune()
        return artifact

    @staticmethod
    def _stat_artifact(signature: str, target: Path) -> ArchiveArtifact | None:
        try:
            stat = target.stat()
        except FileNotFoundError:
            return None
        return ArchiveArtifact(signature=signature, path=target, size=stat.st_size, mtime=stat.st_mtime)

    def _build(self, target: Path, records: tuple[MediaRecord, ...]) -> list[str]:
        skipped: list[str] = []

        def write(tmp: Path) -> None:
            with zipfile.ZipFile(
                tmp,
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=self.compress_level,
                strict_timestamps=False,
            ) as bundle:
                for record in records:
                    try:
                        bundle.write(self.source_dir / record.name, arcname=record.name)
                    except FileNotFoundError:
                        skipped.append(record.name)
                        self.log.warning("archive.entry.missing", extra={"source": record.name})

        publish_atomically(target, write)
        return skipped

    def _schedule_prune(self) -> None:
        task = asyncio.ensure_future(asyncio.to_thread(self.prune))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def prune(self, keep: str | None = None) -> list[str]:
        """Delete every archive except ``keep``; failures are logged only.

        ``keep`` defaults to the most recently built artifact, read when the
        prune runs, so an older prune never removes a newer build.
        """
        keep = keep or self._current
        removed: list[str] = []
        if keep is None:
            return removed
        try:
            candidates = [
                path
                for path in self.archive_dir.iterdir()
                if path.name.startswith(ARCHIVE_PREFIX)
                and path.name.endswith(ARCHIVE_SUFFIX)
                and path.name != keep
            ]
        except OSError:
            self.log.exception("archive.prune.failed", extra={"keep": keep})
            return removed
        for path in candidates:
            try:
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError:
                self.log.exception("archive.prune.failed", extra={"archive": path.name})
                continue
            removed.append(path.name)
        if removed:
            self.log.info("archive.prune.completed", extra={"removed": removed, "keep": keep})
        return removed

    async def wait_background(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
