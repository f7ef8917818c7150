"""
File-backed catalog source.

Reads a per-provider directory of JSON documents, the layout a scraper or an
export job drops on disk::

    <root>/<provider_id>/live.json          list of live channels
    <root>/<provider_id>/movies.json        list of movies
    <root>/<provider_id>/series.json        list of series (with or without seasons)
    <root>/<provider_id>/animes.json        list of animes (optional)
    <root>/<provider_id>/series/<id>.json   one series with its seasons and episodes
    <root>/<provider_id>/epg/<stream>.json  program list for one live channel

A provider whose ``url`` is a ``file://`` URI reads from that directory instead.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import urlparse

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ...infra.settings import settings
from ...shared.schemas import (
    ContainerRecord,
    LiveChannelRecord,
    MovieRecord,
    ProgramRecord,
)
from .base import SourceError, SourceNotFoundError

if TYPE_CHECKING:
    from ...domain.entities import Provider

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class JsonCatalogSource:
    """Catalog source reading JSON listings from a directory tree."""

    name = "json"

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root if root is not None else settings.catalog_dir)

    def provider_dir(self, provider: Provider) -> Path:
        if provider.url and provider.url.startswith("file://"):
            return Path(urlparse(provider.url).path)
        return self.root / str(provider.id)

    # Listings

    def fetch_live_channels(self, provider: Provider) -> list[LiveChannelRecord]:
        return self._read_listing(provider, "live.json", LiveChannelRecord)

    def fetch_movies(self, provider: Provider) -> list[MovieRecord]:
        return self._read_listing(provider, "movies.json", MovieRecord)

    def fetch_series(self, provider: Provider) -> list[ContainerRecord]:
        return self._read_listing(provider, "series.json", ContainerRecord)

    def fetch_animes(self, provider: Provider) -> list[ContainerRecord]:
        # Anime listings only exist for some catalogs
        if not (self.provider_dir(provider) / "animes.json").is_file():
            return []
        return self._read_listing(provider, "animes.json", ContainerRecord)

    # Per-item details

    async def fetch_series_info(self, provider: Provider, series_id: int) -> ContainerRecord:
        path = self.provider_dir(provider) / "series" / f"{series_id}.json"
        payload = await asyncio.to_thread(self._load, path)
        if not isinstance(payload, dict):
            raise SourceError(f"Series document {path} is not an object")

        # Detail documents may omit the id they are stored under
        payload.setdefault("series_id", series_id)
        try:
            record = ContainerRecord.model_validate(payload)
        except PydanticValidationError as e:
            raise SourceError(f"Invalid series document {path}: {e}") from e
        if record.seasons is None:
            record.seasons = []
        return record

    async def fetch_channel_epg(
        self, provider: Provider, stream_id: int, epg_channel_id: str
    ) -> list[ProgramRecord]:
        path = self.provider_dir(provider) / "epg" / f"{stream_id}.json"
        payload = await asyncio.to_thread(self._load, path)
        if isinstance(payload, dict):
            payload = payload.get("epg_listings", [])
        return self._parse_records(payload, ProgramRecord, path)

    # Helpers

    def _read_listing(
        self, provider: Provider, filename: str, model: type[RecordT]
    ) -> list[RecordT]:
        path = self.provider_dir(provider) / filename
        return self._parse_records(self._load(path), model, path)

    @staticmethod
    def _load(path: Path) -> Any:
        if not path.is_file():
            raise SourceNotFoundError(f"Catalog document not found: {path}")
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SourceError(f"Failed to read catalog document {path}: {e}") from e

    @staticmethod
    def _parse_records(payload: Any, model: type[RecordT], path: Path) -> list[RecordT]:
        if not isinstance(payload, list):
            raise SourceError(f"Catalog document {path} is not a list")

        records: list[RecordT] = []
        skipped = 0
        for raw in payload:
            try:
                records.append(model.model_validate(raw))
            except PydanticValidationError as e:
                skipped += 1
                logger.debug("catalog_record_skipped", path=str(path), error=str(e))
        if skipped:
            logger.warning(
                "catalog_records_skipped", path=str(path), skipped=skipped, kept=len(records)
            )
        return records


__all__ = ["JsonCatalogSource"]
