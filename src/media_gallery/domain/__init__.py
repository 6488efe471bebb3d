"""Domain models for the media gallery."""

from .models import Inventory, MediaKind, MediaRecord, sort_records

__all__ = ["Inventory", "MediaKind", "MediaRecord", "sort_records"]
