"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class MediaPaths:
    uploads: Path
    thumbnails: Path
    archives: Path
    public: Path | None = None


@dataclass(slots=True)
class ThumbnailSettings:
    max_width: int
    max_height: int
    quality: int


@dataclass(slots=True)
class ConcurrencyLimits:
    inventory_stat: int
    thumbnails: int


@dataclass(slots=True)
class AppConfig:
    media_paths: MediaPaths
    thumbnails: ThumbnailSettings
    concurrency: ConcurrencyLimits
    watch_enabled: bool
    watch_debounce_seconds: float
    max_upload_files: int


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def ensure_media_paths(paths: MediaPaths) -> None:
    paths.uploads.mkdir(parents=True, exist_ok=True)
    paths.thumbnails.mkdir(parents=True, exist_ok=True)
    paths.archives.mkdir(parents=True, exist_ok=True)


def build_config(
    root: Path,
    *,
    watch_enabled: bool = False,
    watch_debounce_seconds: float = 0.05,
) -> AppConfig:
    """Build a config rooted at ``root`` with default limits (tests, scripts)."""
    media_paths = MediaPaths(
        uploads=root / "uploads",
        thumbnails=root / "thumbnails",
        archives=root / "archives",
    )
    ensure_media_paths(media_paths)
    return AppConfig(
        media_paths=media_paths,
        thumbnails=ThumbnailSettings(max_width=480, max_height=480, quality=80),
        concurrency=ConcurrencyLimits(inventory_stat=32, thumbnails=4),
        watch_enabled=watch_enabled,
        watch_debounce_seconds=watch_debounce_seconds,
        max_upload_files=100,
    )


def load_config() -> AppConfig:
    """Load configuration from environment."""
    root = Path(os.getenv("MEDIA_ROOT", "media"))
    public_dir = os.getenv("PUBLIC_DIR")
    media_paths = MediaPaths(
        uploads=Path(os.getenv("UPLOAD_DIR", str(root / "uploads"))),
        thumbnails=Path(os.getenv("THUMBNAIL_DIR", str(root / "thumbnails"))),
        archives=Path(os.getenv("ARCHIVE_DIR", str(root / "archives"))),
        public=Path(public_dir) if public_dir else None,
    )
    ensure_media_paths(media_paths)

    thumbnails = ThumbnailSettings(
        max_width=int(os.getenv("THUMBNAIL_MAX_WIDTH", 480)),
        max_height=int(os.getenv("THUMBNAIL_MAX_HEIGHT", 480)),
        quality=int(os.getenv("THUMBNAIL_QUALITY", 80)),
    )
    concurrency = ConcurrencyLimits(
        inventory_stat=int(os.getenv("INVENTORY_STAT_CONCURRENCY", 32)),
        thumbnails=int(os.getenv("THUMBNAIL_CONCURRENCY", 4)),
    )

    return AppConfig(
        media_paths=media_paths,
        thumbnails=thumbnails,
        concurrency=concurrency,
        watch_enabled=_env_flag("WATCH_ENABLED", True),
        watch_debounce_seconds=int(os.getenv("WATCH_DEBOUNCE_MS", 50)) / 1000.0,
        max_upload_files=int(os.getenv("MAX_UPLOAD_FILES", 100)),
    )
