"""
Series details sync.

Tag-based catalogs list series without their seasons. Details are fetched one
series at a time and reconciled into seasons and episodes. Large providers
fan this out as background jobs of ``batch_size`` series each, staggered by
``delay_between_batches`` seconds so the upstream is not hit all at once.

Database work inside the async path runs on worker threads, so a slow write
is a suspension point the per-series timeout can abandon.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from ..adapters import registry
from ..adapters.sources.base import CatalogSource
from ..domain.entities import Provider, Series, SyncJob
from ..infra.settings import settings
from ..infra.uow import session
from ..jobs.queue import ACTIVE_STATES, JobQueue
from ..pipeline.batching import chunked
from ..pipeline.reconciler import CONTAINER_FIELDS, ContainerStats, reconcile_container
from ..pipeline.task_runner import RunSummary, run_bounded
from ..shared.results import Err, FailureKind, Ok, Result, SyncFailure
from ..shared.schemas import ContainerRecord
from ..shared.types import ContentKind, ProviderType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _SeriesTarget:
    pk: int
    upstream_id: int
    kind: ContentKind
    provider: Provider
    current: dict[str, Any]


def _load_target(series_pk: int, session_factory: sessionmaker | None) -> _SeriesTarget | None:
    with session(session_factory) as db:
        series = db.get(Series, series_pk)
        if series is None:
            return None
        provider = db.get(Provider, series.provider_id)
        db.expunge(provider)
        return _SeriesTarget(
            pk=series.id,
            upstream_id=series.series_id,
            kind=ContentKind(series.content_type),
            provider=provider,
            current={name: getattr(series, name) for name in CONTAINER_FIELDS},
        )


def _store_details(
    target: _SeriesTarget, record: ContainerRecord, session_factory: sessionmaker | None
) -> Result[ContainerStats]:
    prune = settings.prune_missing and target.provider.kind is ProviderType.XTREAM
    with session(session_factory) as db:
        return reconcile_container(
            db, target.provider.id, target.kind, record, prune_missing_children=prune
        )


async def sync_series_details_async(
    series_pk: int,
    *,
    source: CatalogSource | None = None,
    session_factory: sessionmaker | None = None,
) -> Result[ContainerStats]:
    """Fetch one series' detail document and reconcile its seasons and episodes."""
    target = await asyncio.to_thread(_load_target, series_pk, session_factory)
    if target is None:
        return Err(SyncFailure(FailureKind.NOT_FOUND, f"series {series_pk}"))

    source = source or registry.get_source(target.provider)
    record = await source.fetch_series_info(target.provider, target.upstream_id)

    # Detail documents are keyed by the listing id and may omit listing fields
    updates: dict[str, Any] = {"upstream_id": target.upstream_id}
    for name, value in target.current.items():
        missing = record.name == "Unknown" if name == "name" else getattr(record, name) is None
        if missing and value is not None:
            updates[name] = value
    record = record.model_copy(update=updates)

    result = await asyncio.to_thread(_store_details, target, record, session_factory)

    if isinstance(result, Ok):
        logger.debug(
            "series_details_synced",
            series_id=series_pk,
            seasons=result.value.seasons,
            episodes=result.value.episodes,
        )
    return result


def sync_series_details(
    series_pk: int,
    *,
    source: CatalogSource | None = None,
    session_factory: sessionmaker | None = None,
) -> Result[ContainerStats]:
    return asyncio.run(
        sync_series_details_async(series_pk, source=source, session_factory=session_factory)
    )


async def sync_series_batch(
    series_ids: Sequence[int],
    *,
    source: CatalogSource | None = None,
    session_factory: sessionmaker | None = None,
    max_concurrency: int | None = None,
    timeout: float | None = None,
) -> RunSummary[int]:
    """Sync details for ``series_ids`` with bounded concurrency and a per-series timeout."""

    async def _one(series_pk: int) -> Result[ContainerStats]:
        return await sync_series_details_async(
            series_pk, source=source, session_factory=session_factory
        )

    return await run_bounded(
        list(series_ids), _one, max_concurrency=max_concurrency, timeout=timeout
    )


def series_ids_for_provider(
    provider_id: int,
    *,
    only_missing: bool = False,
    session_factory: sessionmaker | None = None,
) -> list[int]:
    with session(session_factory) as db:
        stmt = select(Series.id).where(Series.provider_id == provider_id).order_by(Series.id)
        if only_missing:
            stmt = stmt.where(Series.episode_count == 0)
        return list(db.execute(stmt).scalars())


def sync_all_for_provider(
    provider_id: int,
    *,
    source: CatalogSource | None = None,
    session_factory: sessionmaker | None = None,
) -> dict[str, Any]:
    """Sync details of every series of a provider inline; returns the run summary."""
    ids = series_ids_for_provider(provider_id, session_factory=session_factory)
    logger.info("series_details_immediate", provider_id=provider_id, series=len(ids))
    summary = asyncio.run(sync_series_batch(ids, source=source, session_factory=session_factory))
    return summary.as_dict()


def enqueue_all_for_provider(
    provider_id: int,
    *,
    batch_size: int = 50,
    only_missing: bool = True,
    delay_between_batches: int = 5,
    session_factory: sessionmaker | None = None,
) -> int:
    """
    Enqueue series-details jobs for a provider.

    Series ids (ascending) are split into jobs of ``batch_size``; job ``i`` is
    scheduled ``i * delay_between_batches`` seconds from now. With
    ``only_missing`` only series without episodes are included. Returns the
    number of jobs enqueued.
    """
    from ..workers.series_details import SyncSeriesDetailsWorker

    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    ids = series_ids_for_provider(provider_id, only_missing=only_missing, session_factory=session_factory)
    if not ids:
        logger.info("series_details_nothing_to_enqueue", provider_id=provider_id)
        return 0

    batches = list(chunked(ids, batch_size))
    with session(session_factory) as db:
        queue = JobQueue(db)
        for index, batch in enumerate(batches):
            queue.enqueue(
                SyncSeriesDetailsWorker,
                {"series_ids": batch},
                schedule_in=index * delay_between_batches,
            )

    logger.info(
        "series_details_enqueued",
        provider_id=provider_id,
        series=len(ids),
        jobs=len(batches),
    )
    return len(batches)


def sync_progress(provider_id: int, *, session_factory: sessionmaker | None = None) -> dict[str, Any]:
    """Progress of series details for a provider, plus outstanding details jobs."""
    from ..workers.series_details import SyncSeriesDetailsWorker

    with session(session_factory) as db:
        total = db.execute(
            select(func.count(Series.id)).where(Series.provider_id == provider_id)
        ).scalar_one()
        synced = db.execute(
            select(func.count(Series.id)).where(
                Series.provider_id == provider_id, Series.episode_count > 0
            )
        ).scalar_one()
        pending_jobs = db.execute(
            select(func.count(SyncJob.id)).where(
                SyncJob.worker == SyncSeriesDetailsWorker.name,
                SyncJob.state.in_(ACTIVE_STATES),
            )
        ).scalar_one()

    total = int(total)
    synced = int(synced)
    return {
        "total": total,
        "synced": synced,
        "pending": total - synced,
        "pending_jobs": int(pending_jobs),
        "progress_percent": round(synced / total * 100, 1) if total else 100.0,
    }


__all__ = [
    "sync_series_details",
    "sync_series_details_async",
    "sync_series_batch",
    "sync_all_for_provider",
    "enqueue_all_for_provider",
    "series_ids_for_provider",
    "sync_progress",
]
