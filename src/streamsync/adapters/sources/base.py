"""
Base protocol for upstream catalog sources.

A catalog source hands structured listings to the sync pipeline. It never
touches the database: the pipeline decides what to persist. Sources raise
``SourceError`` (or a subclass) when the upstream cannot be reached or its
payload cannot be read; they never exit the process.

Listings are fetched synchronously (one call per content kind). Per-item
detail lookups (series details, channel EPG) are coroutines so the task runner
can fan them out with bounded concurrency and cancel them on timeout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ...infra.exceptions import SourceError
from ...shared.schemas import (
    ContainerRecord,
    LiveChannelRecord,
    MovieRecord,
    ProgramRecord,
)

if TYPE_CHECKING:
    from ...domain.entities import Provider


class SourceNotFoundError(SourceError):
    """Raised when the upstream has no document for the requested item."""

    pass


class SourceConfigurationError(SourceError):
    """Raised when a provider lacks the configuration a source needs."""

    pass


@runtime_checkable
class CatalogSource(Protocol):
    """
    Contract for all catalog sources.

    Rules:
    - Must be stateless with respect to the store: return records, never persist.
    - Must raise SourceError (or subclass) for upstream failures.
    - Must skip (and log) individual malformed records rather than failing a listing.
    """

    name: str

    def fetch_live_channels(self, provider: Provider) -> list[LiveChannelRecord]: ...

    def fetch_movies(self, provider: Provider) -> list[MovieRecord]: ...

    def fetch_series(self, provider: Provider) -> list[ContainerRecord]: ...

    def fetch_animes(self, provider: Provider) -> list[ContainerRecord]: ...

    async def fetch_series_info(self, provider: Provider, series_id: int) -> ContainerRecord: ...

    async def fetch_channel_epg(
        self, provider: Provider, stream_id: int, epg_channel_id: str
    ) -> list[ProgramRecord]: ...


__all__ = [
    "CatalogSource",
    "SourceError",
    "SourceNotFoundError",
    "SourceConfigurationError",
]
