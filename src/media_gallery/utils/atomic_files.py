"""Crash-safe publication of derived files."""

from __future__ import annotations

import contextlib
import os
import secrets
import time
from pathlib import Path
from typing import BinaryIO, Callable, Iterator

__all__ = [
    "temp_path_for",
    "atomic_write",
    "publish_atomically",
    "remove_quietly",
    "sweep_stale_temp_files",
]


def temp_path_for(target: Path) -> Path:
    """Hidden sibling of ``target`` used while the file is being written."""
    return target.with_name(f".{target.name}.{secrets.token_hex(6)}.tmp")


def remove_quietly(path: Path) -> None:
    with contextlib.suppress(FileNotFoundError):
        path.unlink()


@contextlib.contextmanager
def atomic_write(target: Path) -> Iterator[BinaryIO]:
    """Yield a binary handle whose content replaces ``target`` on success.

    The data is written to a temp sibling, flushed, and renamed over
    ``target``; readers see either the old file or the complete new one. On
    error the temp file is removed and the exception propagates.
    """
    tmp = temp_path_for(target)
    try:
        with tmp.open("wb") as handle:
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, target)
    except BaseException:
        remove_quietly(tmp)
        raise


def publish_atomically(target: Path, writer: Callable[[Path], None]) -> Path:
    """Run ``writer`` against a temp path, then rename the result to ``target``.

    Used for encoders that want a path rather than a handle (zip archives).
    On failure both the temp file and any partial ``target`` are removed.
    """
    tmp = temp_path_for(target)
    try:
        writer(tmp)
        os.replace(tmp, target)
    except BaseException:
        remove_quietly(tmp)
        remove_quietly(target)
        raise
    return target


def sweep_stale_temp_files(directory: Path, max_age_seconds: float, *, now: float | None = None) -> list[str]:
    """Remove temp files older than ``max_age_seconds`` left by interrupted writes.

    Only hidden ``*.tmp`` names produced by :func:`temp_path_for` are touched.
    """
    cutoff = (time.time() if now is None else now) - max_age_seconds
    removed: list[str] = []
    for path in directory.iterdir():
        if not (path.name.startswith(".") and path.name.endswith(".tmp")):
            continue
        try:
            if not path.is_file() or path.stat().st_mtime > cutoff:
                continue
            path.unlink()
        except FileNotFoundError:
            continue
        removed.append(path.name)
    return removed
