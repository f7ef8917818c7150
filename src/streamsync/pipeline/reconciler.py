"""
Hierarchical content reconciler.

Maps one upstream container (series or anime) with its nested seasons and
episodes onto local rows:

    container   find by (provider_id, series_id)   -> insert or update in place
    season      find by (series.id, season_number) -> insert or update in place
    episodes    bulk upsert on (season_id, episode_id)

Each container is reconciled inside its own SAVEPOINT so a malformed season
(or any other error raised beneath it) rolls back that container only;
siblings in the same chunk are unaffected.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.entities import Episode, Season, Series
from ..shared.clock import utcnow
from ..shared.results import Err, FailureKind, Ok, Result, SyncFailure
from ..shared.schemas import ContainerRecord, SeasonRecord
from ..shared.types import ContentKind
from .batching import ChunkResult
from .writer import EPISODE_UPSERT, episode_rows, upsert_rows

logger = structlog.get_logger(__name__)

# Columns copied from the upstream record onto an existing container row
CONTAINER_FIELDS = ("name", "title", "year", "cover", "genre", "plot", "tmdb_id", "source_path")


@dataclass
class ContainerStats:
    series_id: int
    seasons: int = 0
    episodes: int = 0


class _ContainerAborted(Exception):
    """Internal: unwinds the container savepoint when a nested write fails."""

    def __init__(self, failure: SyncFailure) -> None:
        super().__init__(str(failure))
        self.failure = failure


def _find_container(db: Session, provider_id: int, upstream_id: int) -> Series | None:
    return db.execute(
        select(Series).where(Series.provider_id == provider_id, Series.series_id == upstream_id)
    ).scalar_one_or_none()


def _find_season(db: Session, series_pk: int, season_number: int) -> Season | None:
    return db.execute(
        select(Season).where(Season.series_id == series_pk, Season.season_number == season_number)
    ).scalar_one_or_none()


def upsert_container(
    db: Session, provider_id: int, kind: ContentKind, record: ContainerRecord, now: datetime
) -> Series:
    """Find-or-create the container row, updating mutable fields in place."""
    series = _find_container(db, provider_id, record.upstream_id)
    if series is None:
        series = Series(
            provider_id=provider_id,
            series_id=record.upstream_id,
            content_type=kind.value,
            season_count=record.season_count,
            episode_count=record.episode_count,
            created_at=now,
        )
        db.add(series)

    for name in CONTAINER_FIELDS:
        setattr(series, name, getattr(record, name))
    series.content_type = kind.value
    series.updated_at = now
    db.flush()
    return series


def upsert_season(db: Session, series: Series, record: SeasonRecord, now: datetime) -> Season:
    season = _find_season(db, series.id, record.season_number)
    if season is None:
        season = Season(series_id=series.id, season_number=record.season_number, created_at=now)
        db.add(season)

    season.name = record.display_name
    season.episode_count = record.episode_count
    season.source_path = record.source_path
    season.updated_at = now
    db.flush()
    return season


def _prune_episodes(db: Session, season: Season, keep_ids: set[int]) -> int:
    stmt = delete(Episode).where(Episode.season_id == season.id)
    if keep_ids:
        stmt = stmt.where(Episode.episode_id.not_in(keep_ids))
    return db.execute(stmt).rowcount or 0


def _prune_seasons(db: Session, series: Series, keep_numbers: set[int]) -> int:
    stmt = delete(Season).where(Season.series_id == series.id)
    if keep_numbers:
        stmt = stmt.where(Season.season_number.not_in(keep_numbers))
    return db.execute(stmt).rowcount or 0


def reconcile_container(
    db: Session,
    provider_id: int,
    kind: ContentKind,
    record: ContainerRecord,
    *,
    prune_missing_children: bool = False,
    now: datetime | None = None,
) -> Result[ContainerStats]:
    """
    Reconcile one container and everything beneath it.

    Listing-only records (``seasons is None``) update the container row and
    leave its seasons, episodes and stored counts alone. Returns ``Err`` when
    anything under the container fails; nothing of that container is kept.
    """
    if not kind.is_container:
        raise ValueError(f"{kind.value} is not a container kind")

    now = now or utcnow()
    try:
        with db.begin_nested():
            series = upsert_container(db, provider_id, kind, record, now)
            stats = ContainerStats(series_id=series.id)

            if record.seasons is None:
                return Ok(stats)

            seen_numbers: set[int] = set()
            for season_record in record.seasons:
                season = upsert_season(db, series, season_record, now)
                seen_numbers.add(season_record.season_number)
                stats.seasons += 1

                rows = episode_rows(season.id, season_record.episodes, now)
                written = upsert_rows(db, EPISODE_UPSERT, rows)
                if isinstance(written, Err):
                    raise _ContainerAborted(written.reason)
                stats.episodes += written.value

                if prune_missing_children:
                    _prune_episodes(db, season, {r["episode_id"] for r in rows})

            if prune_missing_children:
                _prune_seasons(db, series, seen_numbers)

            series.season_count = stats.seasons
            series.episode_count = stats.episodes
            db.flush()
    except _ContainerAborted as e:
        logger.error(
            "container_reconcile_failed",
            provider_id=provider_id,
            kind=kind.value,
            upstream_id=record.upstream_id,
            reason=str(e.failure),
        )
        return Err(e.failure)
    except SQLAlchemyError as e:
        logger.error(
            "container_reconcile_failed",
            provider_id=provider_id,
            kind=kind.value,
            upstream_id=record.upstream_id,
            error=str(e),
        )
        return Err(SyncFailure.from_exception(FailureKind.PERSISTENCE, e))
    except Exception as e:
        logger.error(
            "container_reconcile_crashed",
            provider_id=provider_id,
            kind=kind.value,
            upstream_id=record.upstream_id,
            error=str(e),
            exc_info=True,
        )
        return Err(SyncFailure.from_exception(FailureKind.UNEXPECTED, e))

    return Ok(stats)


def reconcile_chunk(
    db: Session,
    provider_id: int,
    kind: ContentKind,
    records: Sequence[ContainerRecord],
    *,
    prune_missing_children: bool = False,
    now: datetime | None = None,
) -> ChunkResult:
    """Reconcile a chunk of containers; failed containers count as failures, not errors."""
    now = now or utcnow()
    result = ChunkResult()
    for record in records:
        outcome = reconcile_container(
            db,
            provider_id,
            kind,
            record,
            prune_missing_children=prune_missing_children,
            now=now,
        )
        if isinstance(outcome, Ok):
            result.succeeded += 1
            result.children += outcome.value.episodes
        else:
            result.failed += 1
    return result


__all__ = [
    "CONTAINER_FIELDS",
    "ContainerStats",
    "reconcile_container",
    "reconcile_chunk",
    "upsert_container",
    "upsert_season",
]
