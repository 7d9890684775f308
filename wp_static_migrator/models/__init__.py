"""Pydantic models for the records, indexes and media items on disk."""

from .content import CONTENT_KINDS, ContentKind, ContentRecord, IndexEntry, MediaItem, ScrapeTask

__all__ = ["CONTENT_KINDS", "ContentKind", "ContentRecord", "IndexEntry", "MediaItem", "ScrapeTask"]
