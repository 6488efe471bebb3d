"""Immutable inventory snapshot types.

A :class:`MediaRecord` describes one regular file of the upload directory. An
:class:`Inventory` is an ordered, generation-tagged tuple of records; it is
replaced wholesale on every refresh and never mutated once published.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class MediaKind(str, Enum):
    """Coarse classification derived from the MIME type."""

    IMAGE = "image"
    VIDEO = "video"
    OTHER = "other"

    @classmethod
    def from_mime(cls, mime: str) -> "MediaKind":
        if mime.startswith("image/"):
            return cls.IMAGE
        if mime.startswith("video/"):
            return cls.VIDEO
        return cls.OTHER


@dataclass(frozen=True, slots=True)
class MediaRecord:
    """Stat snapshot of a single media file; ``name`` is the unique key."""

    name: str
    size: int
    mtime: float
    mime: str
    kind: MediaKind

    @property
    def mtime_ms(self) -> float:
        return self.mtime * 1000.0


def _listing_key(record: MediaRecord) -> tuple[float, str]:
    return (-record.mtime, record.name)


def sort_records(records: Iterable[MediaRecord]) -> tuple[MediaRecord, ...]:
    """Order records newest first, ties broken by ascending name."""
    return tuple(sorted(records, key=_listing_key))


@dataclass(frozen=True, slots=True)
class Inventory:
    """Ordered media snapshot tagged with the generation it was built for."""

    generation: int
    records: tuple[MediaRecord, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    @property
    def total(self) -> int:
        return len(self.records)

    def page(self, offset: int, limit: int) -> tuple[tuple[MediaRecord, ...], int | None]:
        """Return the ``[offset, offset + limit)`` slice and the next offset.

        The next offset is ``None`` when the slice reaches the end.
        """
        chunk = self.records[offset : offset + limit]
        end = offset + len(chunk)
        next_offset = end if end < len(self.records) else None
        return chunk, next_offset

    def by_name(self) -> tuple[MediaRecord, ...]:
        return tuple(sorted(self.records, key=lambda record: record.name))
