"""
Provider sync orchestrator.

Drives one provider's full catalog sync as a linear state machine::

    idle|pending -> syncing -> completed | failed

Phases run in order, each in its own units of work:

    live     tag-based providers only  mandatory
    movies                             mandatory
    series                             mandatory
    anime                              best-effort: an Err is downgraded to zero

A mandatory phase returning ``Err`` marks the provider ``failed`` and the
error is returned to the caller (the job system applies its own retry budget).
Every status transition is published as a ``{status, provider_id, extra}``
event; publishing never blocks the sync.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..adapters import registry
from ..adapters.sources.base import CatalogSource, SourceConfigurationError, SourceError
from ..domain.entities import LiveChannel, Movie, Provider, Series
from ..infra.events import publish_provider_status
from ..infra.settings import settings
from ..infra.uow import session
from ..pipeline.batching import BatchStats, ChunkResult, chunked, process_in_chunks
from ..pipeline.reconciler import reconcile_chunk
from ..pipeline.writer import (
    LIVE_CHANNEL_UPSERT,
    MOVIE_UPSERT,
    live_channel_rows,
    movie_rows,
    upsert_rows,
)
from ..shared.clock import utcnow
from ..shared.results import Err, FailureKind, Ok, Result, SyncFailure
from ..shared.schemas import ContainerRecord
from ..shared.types import ContentKind, ProviderType, SeriesDetailsMode, SyncStatus

logger = structlog.get_logger(__name__)


@dataclass
class PhaseStats:
    """Outcome of one sync phase."""

    phase: str
    processed: int = 0
    failed: int = 0
    children: int = 0
    pruned: int = 0

    @classmethod
    def from_batch(cls, phase: str, stats: BatchStats, pruned: int = 0) -> PhaseStats:
        return cls(
            phase=phase,
            processed=stats.processed,
            failed=stats.failed,
            children=stats.children,
            pruned=pruned,
        )


@dataclass
class SyncStats:
    """Per-kind counts of a completed provider sync."""

    provider_id: int
    live_channels: int = 0
    movies: int = 0
    series: int = 0
    animes: int = 0
    episodes: int = 0
    details: dict[str, Any] | None = None
    phases: dict[str, PhaseStats] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "live_channels_count": self.live_channels,
            "movies_count": self.movies,
            "series_count": self.series,
            "animes_count": self.animes,
            "episodes_count": self.episodes,
            "details": self.details,
            "phases": {name: asdict(stats) for name, stats in self.phases.items()},
        }


def classify_exception(exc: BaseException, phase: str | None = None) -> SyncFailure:
    """Map an exception raised inside a phase onto the sync failure taxonomy."""
    if isinstance(exc, SourceConfigurationError):
        kind = FailureKind.NOT_CONFIGURED
    elif isinstance(exc, SourceError):
        kind = FailureKind.UPSTREAM
    elif isinstance(exc, SQLAlchemyError):
        kind = FailureKind.PERSISTENCE
    else:
        kind = FailureKind.UNEXPECTED
    return SyncFailure.from_exception(kind, exc, phase=phase)


def load_provider(db: Session, provider_id: int) -> Provider | None:
    """Load a provider detached from ``db`` so it stays readable after the session closes."""
    provider = db.get(Provider, provider_id)
    if provider is not None:
        db.expunge(provider)
    return provider


def set_status(
    provider: Provider,
    status: SyncStatus,
    *,
    session_factory: sessionmaker | None = None,
    extra: dict[str, Any] | None = None,
    **fields: Any,
) -> None:
    """Persist a status transition (plus any extra columns) and publish it."""
    with session(session_factory) as db:
        row = db.get(Provider, provider.id)
        if row is None:
            return
        row.sync_status = status.value
        for name, value in fields.items():
            setattr(row, name, value)
    provider.sync_status = status.value
    publish_provider_status(provider.id, status.value, user_id=provider.user_id, extra=extra)


def check_configured(provider: Provider) -> SyncFailure | None:
    if provider.kind is ProviderType.GINDEX:
        if not provider.gindex_url:
            return SyncFailure(FailureKind.NOT_CONFIGURED, "drive-index provider has no gindex_url")
        return None
    if not provider.url:
        return SyncFailure(FailureKind.NOT_CONFIGURED, "provider has no url")
    return None


# Pruning


def prune_missing(
    db: Session,
    model: type,
    key_column: str,
    provider_id: int,
    keep_keys: Collection[int],
    *,
    content_type: str | None = None,
) -> int:
    """Delete rows of ``provider_id`` whose natural key is not in ``keep_keys``."""
    key_attr = getattr(model, key_column)
    stmt = select(model.id, key_attr).where(model.provider_id == provider_id)
    if content_type is not None:
        stmt = stmt.where(model.content_type == content_type)

    keep = set(keep_keys)
    stale_ids = [row_id for row_id, key in db.execute(stmt) if key not in keep]
    for batch in chunked(stale_ids, settings.upsert_chunk_size):
        db.execute(delete(model).where(model.id.in_(batch)))
    return len(stale_ids)


def _should_prune(provider: Provider, listing: Sequence[Any], phase: str) -> bool:
    if not settings.prune_missing or provider.kind is not ProviderType.XTREAM:
        return False
    if not listing:
        # Never prune against an empty listing
        logger.warning("prune_skipped_empty_listing", provider_id=provider.id, phase=phase)
        return False
    return True


# Phases


def _flat_phase(
    provider: Provider,
    phase: str,
    records: Sequence[Any],
    to_rows: Callable[[int, Sequence[Any], datetime], list[dict[str, Any]]],
    spec,
    chunk_size: int,
    session_factory: sessionmaker | None,
) -> BatchStats:
    now = utcnow()

    def _write_chunk(chunk: list[Any]) -> ChunkResult | Err:
        with session(session_factory) as db:
            written = upsert_rows(db, spec, to_rows(provider.id, chunk, now))
        if isinstance(written, Err):
            return written
        return ChunkResult(succeeded=len(chunk))

    return process_in_chunks(records, chunk_size, _write_chunk, label=phase)


def sync_live_channels(
    provider: Provider, source: CatalogSource, session_factory: sessionmaker | None = None
) -> PhaseStats:
    records = source.fetch_live_channels(provider)
    stats = _flat_phase(
        provider,
        "live",
        records,
        live_channel_rows,
        LIVE_CHANNEL_UPSERT,
        settings.upsert_chunk_size,
        session_factory,
    )
    pruned = 0
    if _should_prune(provider, records, "live"):
        with session(session_factory) as db:
            pruned = prune_missing(db, LiveChannel, "stream_id", provider.id, {r.stream_id for r in records})
    return PhaseStats.from_batch("live", stats, pruned)


def sync_movies(
    provider: Provider, source: CatalogSource, session_factory: sessionmaker | None = None
) -> PhaseStats:
    records = source.fetch_movies(provider)
    stats = _flat_phase(
        provider,
        "movies",
        records,
        movie_rows,
        MOVIE_UPSERT,
        settings.movie_chunk_size,
        session_factory,
    )
    pruned = 0
    if _should_prune(provider, records, "movies"):
        with session(session_factory) as db:
            pruned = prune_missing(db, Movie, "stream_id", provider.id, {r.upstream_id for r in records})
    return PhaseStats.from_batch("movies", stats, pruned)


def sync_containers(
    provider: Provider,
    kind: ContentKind,
    records: Sequence[ContainerRecord],
    session_factory: sessionmaker | None = None,
    *,
    prune: bool = False,
) -> PhaseStats:
    """Reconcile container records chunk by chunk (one unit of work per chunk)."""
    now = utcnow()
    prune_children = settings.prune_missing and provider.kind is ProviderType.XTREAM

    def _reconcile(chunk: list[ContainerRecord]) -> ChunkResult:
        with session(session_factory) as db:
            return reconcile_chunk(
                db, provider.id, kind, chunk, prune_missing_children=prune_children, now=now
            )

    stats = process_in_chunks(records, settings.series_chunk_size, _reconcile, label=kind.value)

    pruned = 0
    if prune and _should_prune(provider, records, kind.value):
        with session(session_factory) as db:
            pruned = prune_missing(
                db,
                Series,
                "series_id",
                provider.id,
                {r.upstream_id for r in records},
                content_type=kind.value,
            )
    return PhaseStats.from_batch(kind.value, stats, pruned)


def sync_series(
    provider: Provider, source: CatalogSource, session_factory: sessionmaker | None = None
) -> PhaseStats:
    records = source.fetch_series(provider)
    return sync_containers(provider, ContentKind.SERIES, records, session_factory, prune=True)


def sync_animes(
    provider: Provider, source: CatalogSource, session_factory: sessionmaker | None = None
) -> Result[PhaseStats]:
    """Best-effort phase: every failure comes back as ``Err``, nothing raises."""
    try:
        records = source.fetch_animes(provider)
        return Ok(sync_containers(provider, ContentKind.ANIME, records, session_factory))
    except Exception as e:
        logger.warning("anime_phase_failed", provider_id=provider.id, error=str(e))
        return Err(classify_exception(e, phase="anime"))


def _run_mandatory(
    phase: str, fn: Callable[[], PhaseStats], provider_id: int
) -> Result[PhaseStats]:
    log = logger.bind(provider_id=provider_id, phase=phase)
    log.info("sync_phase_started")
    try:
        stats = fn()
    except Exception as e:
        log.error("sync_phase_failed", error=str(e), exc_info=True)
        return Err(classify_exception(e, phase=phase))
    log.info("sync_phase_finished", processed=stats.processed, failed=stats.failed, pruned=stats.pruned)
    return Ok(stats)


def _series_details_step(
    provider: Provider,
    mode: SeriesDetailsMode,
    source: CatalogSource,
    session_factory: sessionmaker | None,
) -> Result[dict[str, Any] | None]:
    from . import series_details

    if mode is SeriesDetailsMode.SKIP:
        return Ok(None)
    try:
        if mode is SeriesDetailsMode.IMMEDIATE:
            summary = series_details.sync_all_for_provider(
                provider.id, source=source, session_factory=session_factory
            )
            return Ok(summary)
        job_count = series_details.enqueue_all_for_provider(
            provider.id,
            batch_size=settings.series_details_batch_size,
            delay_between_batches=settings.series_details_delay_between_batches,
            session_factory=session_factory,
        )
        return Ok({"enqueued_jobs": job_count})
    except Exception as e:
        logger.error("series_details_step_failed", provider_id=provider.id, error=str(e), exc_info=True)
        return Err(classify_exception(e, phase="series_details"))


# Orchestrator


def sync_provider(
    provider_id: int,
    *,
    series_details: SeriesDetailsMode | str = SeriesDetailsMode.SKIP,
    source: CatalogSource | None = None,
    session_factory: sessionmaker | None = None,
) -> Result[SyncStats]:
    """
    Run a full sync of one provider.

    Returns ``Ok(SyncStats)`` or ``Err(SyncFailure)`` whose kind is
    ``not_found``, ``not_configured``, ``upstream``, ``persistence`` or
    ``unexpected``.
    """
    mode = SeriesDetailsMode.parse(series_details)

    with session(session_factory) as db:
        provider = load_provider(db, provider_id)
    if provider is None:
        return Err(SyncFailure(FailureKind.NOT_FOUND, f"provider {provider_id}"))

    log = logger.bind(provider_id=provider.id, provider_type=provider.provider_type)

    failure = check_configured(provider)
    if failure is None and source is None:
        try:
            source = registry.get_source(provider)
        except SourceError as e:
            failure = classify_exception(e)
    if failure is not None:
        log.warning("provider_not_configured", reason=str(failure))
        set_status(provider, SyncStatus.FAILED, session_factory=session_factory, extra={"reason": str(failure)})
        return Err(failure)

    def _fail(reason: SyncFailure) -> Err:
        log.error("provider_sync_failed", reason=str(reason))
        set_status(provider, SyncStatus.FAILED, session_factory=session_factory, extra={"reason": str(reason)})
        return Err(reason)

    log.info("provider_sync_started", series_details=mode.value)
    set_status(provider, SyncStatus.SYNCING, session_factory=session_factory)

    stats = SyncStats(provider_id=provider.id)
    now = utcnow()
    synced_at: dict[str, datetime] = {}

    if provider.kind is ProviderType.XTREAM:
        live = _run_mandatory("live", lambda: sync_live_channels(provider, source, session_factory), provider.id)
        if isinstance(live, Err):
            return _fail(live.reason)
        stats.phases["live"] = live.value
        stats.live_channels = live.value.processed
        synced_at["live_synced_at"] = now

    movies = _run_mandatory("movies", lambda: sync_movies(provider, source, session_factory), provider.id)
    if isinstance(movies, Err):
        return _fail(movies.reason)
    stats.phases["movies"] = movies.value
    stats.movies = movies.value.processed
    synced_at["vod_synced_at"] = now

    series = _run_mandatory("series", lambda: sync_series(provider, source, session_factory), provider.id)
    if isinstance(series, Err):
        return _fail(series.reason)
    stats.phases["series"] = series.value
    stats.series = series.value.processed
    synced_at["series_synced_at"] = now

    anime = sync_animes(provider, source, session_factory)
    if isinstance(anime, Err):
        # anime content is best-effort: a failed phase counts as an empty one
        log.warning("anime_phase_downgraded", reason=str(anime.reason))
        anime_stats = PhaseStats(phase="anime")
    else:
        anime_stats = anime.value
        synced_at["anime_synced_at"] = now
    stats.phases["anime"] = anime_stats
    stats.animes = anime_stats.processed
    stats.episodes = series.value.children + anime_stats.children

    details = _series_details_step(provider, mode, source, session_factory)
    if isinstance(details, Err):
        return _fail(details.reason)
    stats.details = details.value

    counts = {
        "live_channels_count": stats.live_channels,
        "movies_count": stats.movies,
        "series_count": stats.series,
        "animes_count": stats.animes,
        "episodes_count": stats.episodes,
    }
    set_status(
        provider,
        SyncStatus.COMPLETED,
        session_factory=session_factory,
        extra=counts,
        **counts,
        **synced_at,
    )
    log.info("provider_sync_completed", **counts)
    return Ok(stats)


__all__ = [
    "PhaseStats",
    "SyncStats",
    "classify_exception",
    "load_provider",
    "set_status",
    "prune_missing",
    "sync_live_channels",
    "sync_movies",
    "sync_series",
    "sync_animes",
    "sync_containers",
    "sync_provider",
]
