"""Helpers creating media files with controlled metadata."""

from __future__ import annotations

import os
from pathlib import Path

from PIL import Image


def write_media(directory: Path, name: str, data: bytes = b"data", *, mtime: float | None = None) -> Path:
    path = directory / name
    path.write_bytes(data)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def write_image(
    directory: Path,
    name: str,
    size: tuple[int, int] = (64, 32),
    *,
    mtime: float | None = None,
    **save_kwargs,
) -> Path:
    path = directory / name
    Image.new("RGB", size, (200, 40, 40)).save(path, format="JPEG", **save_kwargs)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path
