"""
Shared types and enums for StreamSync.

This module contains common types and enums that are used across
the domain, pipeline, CLI, and other layers.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ProviderType(str, Enum):
    """Upstream catalog flavours."""

    XTREAM = "xtream"  # tag-based catalog with live, vod and series listings
    GINDEX = "gindex"  # drive-index catalog scraped from folder trees


class SyncStatus(str, Enum):
    """Provider sync lifecycle: idle -> pending -> syncing -> completed|failed."""

    IDLE = "idle"
    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


class ContentKind(str, Enum):
    """Kinds of catalog content handled by the sync pipeline."""

    MOVIE = "movie"
    SERIES = "series"
    ANIME = "anime"

    @property
    def is_container(self) -> bool:
        return self is not ContentKind.MOVIE


class UserContentType(str, Enum):
    """Content types referenced by favorites and watch history rows."""

    LIVE_CHANNEL = "live_channel"
    MOVIE = "movie"
    SERIES = "series"
    EPISODE = "episode"


class JobState(str, Enum):
    """States of a persisted background job."""

    AVAILABLE = "available"
    SCHEDULED = "scheduled"
    EXECUTING = "executing"
    RETRYABLE = "retryable"
    COMPLETED = "completed"
    DISCARDED = "discarded"


class SeriesDetailsMode(str, Enum):
    """How a provider sync handles per-series season/episode details."""

    SKIP = "skip"
    IMMEDIATE = "immediate"
    ENQUEUE = "enqueue"

    @classmethod
    def parse(cls, value: Any) -> SeriesDetailsMode:
        """Parse job args leniently; unknown values fall back to SKIP."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.SKIP


# Type aliases for common data structures
JobArgs = dict[str, Any]
StatusMessage = dict[str, Any]
