"""
Batch upsert writer.

One bulk ``INSERT ... ON CONFLICT (natural key) DO UPDATE`` per call. On
conflict only the mutable display columns listed in the ``UpsertSpec`` are
replaced; the surrogate ``id`` and ``created_at`` of an existing row are never
touched, so favorites and watch history keep pointing at the same rows across
re-syncs.

The statement runs inside a SAVEPOINT. A constraint violation rolls back the
whole chunk and comes back as ``Err``; the caller's session stays usable.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.entities import EpgProgram, Episode, LiveChannel, Movie
from ..shared.clock import utcnow
from ..shared.results import Err, FailureKind, Ok, Result, SyncFailure
from ..shared.schemas import EpisodeRecord, LiveChannelRecord, MovieRecord, ProgramRecord

logger = structlog.get_logger(__name__)

Row = dict[str, Any]


@dataclass(frozen=True)
class UpsertSpec:
    """Target table, conflict target (natural key) and the columns replaced on conflict."""

    model: type
    conflict_columns: tuple[str, ...]
    replace_columns: tuple[str, ...]

    @property
    def table(self):
        return self.model.__table__

    def key_of(self, row: Mapping[str, Any]) -> tuple[Any, ...]:
        return tuple(row[c] for c in self.conflict_columns)


MOVIE_UPSERT = UpsertSpec(
    model=Movie,
    conflict_columns=("provider_id", "stream_id"),
    replace_columns=(
        "name",
        "title",
        "year",
        "container_extension",
        "source_path",
        "stream_icon",
        "genre",
        "plot",
        "tmdb_id",
        "updated_at",
    ),
)

EPISODE_UPSERT = UpsertSpec(
    model=Episode,
    conflict_columns=("season_id", "episode_id"),
    replace_columns=(
        "episode_num",
        "title",
        "name",
        "container_extension",
        "source_path",
        "duration_secs",
        "updated_at",
    ),
)

LIVE_CHANNEL_UPSERT = UpsertSpec(
    model=LiveChannel,
    conflict_columns=("provider_id", "stream_id"),
    replace_columns=(
        "name",
        "stream_icon",
        "epg_channel_id",
        "tv_archive",
        "direct_source",
        "updated_at",
    ),
)

EPG_PROGRAM_UPSERT = UpsertSpec(
    model=EpgProgram,
    conflict_columns=("provider_id", "epg_channel_id", "start_time"),
    replace_columns=("title", "description", "end_time", "category", "lang", "updated_at"),
)


def _insert_for(db: Session, spec: UpsertSpec):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(spec.table)
    if dialect == "sqlite":
        return sqlite_insert(spec.table)
    raise NotImplementedError(f"Upsert is not supported on dialect {dialect!r}")


def dedupe_by_key(spec: UpsertSpec, rows: Iterable[Mapping[str, Any]]) -> list[Row]:
    """Collapse rows sharing a natural key, last one wins (one statement cannot hit a row twice)."""
    by_key: dict[tuple[Any, ...], Row] = {}
    for row in rows:
        by_key[spec.key_of(row)] = dict(row)
    return list(by_key.values())


def upsert_rows(db: Session, spec: UpsertSpec, rows: Sequence[Mapping[str, Any]]) -> Result[int]:
    """
    Bulk upsert ``rows`` into ``spec``'s table.

    Returns ``Ok(affected_rows)`` or ``Err`` with a persistence failure. Never
    raises for database errors.
    """
    if not rows:
        return Ok(0)

    payload = dedupe_by_key(spec, rows)
    stmt = _insert_for(db, spec).values(payload)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(spec.conflict_columns),
        set_={col: stmt.excluded[col] for col in spec.replace_columns},
    )

    try:
        with db.begin_nested():
            result = db.execute(stmt)
    except SQLAlchemyError as e:
        logger.warning(
            "upsert_chunk_failed",
            table=spec.table.name,
            rows=len(payload),
            error=str(e.__cause__ or e),
        )
        return Err(SyncFailure.from_exception(FailureKind.PERSISTENCE, e))

    affected = result.rowcount if result.rowcount is not None and result.rowcount >= 0 else len(payload)
    return Ok(affected)


# Row builders


def movie_rows(provider_id: int, records: Iterable[MovieRecord], now: datetime | None = None) -> list[Row]:
    now = now or utcnow()
    return [
        {
            "provider_id": provider_id,
            "stream_id": r.upstream_id,
            "name": r.name,
            "title": r.title,
            "year": r.year,
            "container_extension": r.container_extension,
            "source_path": r.source_path,
            "stream_icon": r.stream_icon,
            "genre": r.genre,
            "plot": r.plot,
            "tmdb_id": r.tmdb_id,
            "created_at": now,
            "updated_at": now,
        }
        for r in records
    ]


def episode_rows(season_id: int, records: Iterable[EpisodeRecord], now: datetime | None = None) -> list[Row]:
    now = now or utcnow()
    return [
        {
            "season_id": season_id,
            "episode_id": r.upstream_episode_id,
            "episode_num": r.episode_num,
            "title": r.title,
            "name": r.name,
            "container_extension": r.container_extension,
            "source_path": r.source_path,
            "duration_secs": r.duration_secs,
            "created_at": now,
            "updated_at": now,
        }
        for r in records
    ]


def live_channel_rows(
    provider_id: int, records: Iterable[LiveChannelRecord], now: datetime | None = None
) -> list[Row]:
    now = now or utcnow()
    return [
        {
            "provider_id": provider_id,
            "stream_id": r.stream_id,
            "name": r.name,
            "stream_icon": r.stream_icon,
            "epg_channel_id": r.epg_channel_id,
            "tv_archive": r.tv_archive,
            "direct_source": r.direct_source,
            "created_at": now,
            "updated_at": now,
        }
        for r in records
    ]


def program_rows(
    provider_id: int,
    epg_channel_id: str,
    records: Iterable[ProgramRecord],
    now: datetime | None = None,
) -> list[Row]:
    """Rows for complete programs only; entries without title, start or end are dropped."""
    now = now or utcnow()
    return [
        {
            "provider_id": provider_id,
            "epg_channel_id": epg_channel_id,
            "title": r.title,
            "description": r.description,
            "start_time": r.start_time,
            "end_time": r.end_time,
            "category": r.category,
            "lang": r.lang,
            "created_at": now,
            "updated_at": now,
        }
        for r in records
        if r.is_complete
    ]


__all__ = [
    "UpsertSpec",
    "MOVIE_UPSERT",
    "EPISODE_UPSERT",
    "LIVE_CHANNEL_UPSERT",
    "EPG_PROGRAM_UPSERT",
    "upsert_rows",
    "dedupe_by_key",
    "movie_rows",
    "episode_rows",
    "live_channel_rows",
    "program_rows",
]
