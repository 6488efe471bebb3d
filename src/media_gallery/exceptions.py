"""Domain level exceptions."""

from __future__ import annotations

__all__ = [
    "AppError",
    "InventoryUnavailableError",
    "ArchiveBuildError",
    "UploadRejectedError",
    "InvalidMediaNameError",
    "MediaNotFoundError",
]


class AppError(Exception):
    """Base class for application specific errors."""


class InventoryUnavailableError(AppError):
    """Raised when the media directory cannot be listed."""


class ArchiveBuildError(AppError):
    """Raised when the bulk-download archive cannot be written."""


class UploadRejectedError(AppError):
    """Raised when an upload request violates configured limits."""


class InvalidMediaNameError(AppError):
    """Raised when a media name could escape the upload directory."""


class MediaNotFoundError(AppError):
    """Raised when the named media file does not exist."""
