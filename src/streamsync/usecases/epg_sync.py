"""
EPG (program guide) sync.

Programs are fetched per live channel and upserted on
(provider_id, epg_channel_id, start_time), so upstream revisions of
not-yet-aired entries replace the stored ones. Channels are processed in
batches through the bounded-concurrency runner with a pause between batches;
a batch that mostly fails stops the run and asks for the job to be snoozed.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from ..adapters import registry
from ..adapters.sources.base import CatalogSource
from ..domain.entities import EpgProgram, LiveChannel, Provider
from ..infra.events import broadcaster, provider_topic
from ..infra.settings import settings
from ..infra.uow import session
from ..pipeline.batching import chunked
from ..pipeline.retry import RetryPolicy, SnoozeBatch
from ..pipeline.task_runner import run_bounded
from ..pipeline.writer import EPG_PROGRAM_UPSERT, program_rows, upsert_rows
from ..shared.clock import utcnow
from ..shared.results import Err, FailureKind, Ok, Result, SyncFailure
from .provider_sync import load_provider

logger = structlog.get_logger(__name__)

EPG_SYNC_COMPLETE = "epg_sync_complete"


@dataclass(frozen=True)
class EpgChannel:
    channel_id: int
    stream_id: int
    epg_channel_id: str


@dataclass
class EpgSyncStats:
    channels: int = 0
    synced: int = 0
    programs: int = 0
    failed: int = 0
    failed_channels: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "channels": self.channels,
            "synced": self.synced,
            "programs": self.programs,
            "failed": self.failed,
            "failed_channels": list(self.failed_channels),
        }


def _store_programs(rows: list[dict[str, Any]], session_factory: sessionmaker | None) -> Result[int]:
    with session(session_factory) as db:
        return upsert_rows(db, EPG_PROGRAM_UPSERT, rows)


async def sync_channel_epg_async(
    provider: Provider,
    stream_id: int,
    epg_channel_id: str,
    *,
    source: CatalogSource | None = None,
    session_factory: sessionmaker | None = None,
) -> Result[int]:
    """Fetch and upsert one channel's programs; returns the number of programs stored."""
    source = source or registry.get_source(provider)
    programs = await source.fetch_channel_epg(provider, stream_id, epg_channel_id)

    rows = program_rows(provider.id, epg_channel_id, programs)
    dropped = len(programs) - len(rows)
    if dropped:
        logger.debug("epg_programs_dropped", stream_id=stream_id, dropped=dropped)
    if not rows:
        return Ok(0)

    written = await asyncio.to_thread(_store_programs, rows, session_factory)
    if isinstance(written, Err):
        return written
    return Ok(len(rows))


def sync_channel_epg(
    provider: Provider,
    stream_id: int,
    epg_channel_id: str,
    *,
    source: CatalogSource | None = None,
    session_factory: sessionmaker | None = None,
) -> Result[int]:
    return asyncio.run(
        sync_channel_epg_async(
            provider, stream_id, epg_channel_id, source=source, session_factory=session_factory
        )
    )


def eligible_channels(provider_id: int, *, session_factory: sessionmaker | None = None) -> list[EpgChannel]:
    """Live channels of a provider carrying both a stream id and an EPG channel id."""
    with session(session_factory) as db:
        rows = db.execute(
            select(LiveChannel.id, LiveChannel.stream_id, LiveChannel.epg_channel_id)
            .where(
                LiveChannel.provider_id == provider_id,
                LiveChannel.epg_channel_id.is_not(None),
                LiveChannel.epg_channel_id != "",
                LiveChannel.stream_id.is_not(None),
            )
            .order_by(LiveChannel.id)
        ).all()
    return [EpgChannel(row.id, row.stream_id, row.epg_channel_id) for row in rows]


def sync_provider_epg(
    provider_id: int,
    *,
    attempt: int = 1,
    source: CatalogSource | None = None,
    session_factory: sessionmaker | None = None,
    sleep: Callable[[float], Any] = time.sleep,
) -> Result[EpgSyncStats] | SnoozeBatch:
    """
    Sync EPG for every eligible channel of a provider.

    Returns ``Ok(stats)`` when all batches ran, ``SnoozeBatch`` when a batch
    crossed the failure threshold (processing stops there) or ``Err`` when the
    provider does not exist.
    """
    with session(session_factory) as db:
        provider = load_provider(db, provider_id)
    if provider is None:
        return Err(SyncFailure(FailureKind.NOT_FOUND, f"provider {provider_id}"))

    log = logger.bind(provider_id=provider_id, attempt=attempt)
    channels = eligible_channels(provider_id, session_factory=session_factory)
    stats = EpgSyncStats(channels=len(channels))
    log.info("epg_sync_started", channels=len(channels))
    if not channels:
        return Ok(stats)

    source = source or registry.get_source(provider)
    policy = RetryPolicy(
        failure_threshold=settings.retry_failure_threshold,
        base_delay=settings.retry_base_delay,
        max_delay=settings.epg_max_snooze,
    )

    async def _one(channel: EpgChannel) -> Result[int]:
        return await sync_channel_epg_async(
            provider,
            channel.stream_id,
            channel.epg_channel_id,
            source=source,
            session_factory=session_factory,
        )

    batches = list(chunked(channels, settings.epg_batch_size))
    for index, batch in enumerate(batches, start=1):
        summary = asyncio.run(run_bounded(batch, _one, key=lambda c: c.channel_id))
        stats.synced += summary.success_count
        stats.failed += summary.failure_count
        stats.failed_channels.extend(summary.failed_ids)
        stats.programs += sum(o.result or 0 for o in summary.outcomes if o.ok)

        if index < len(batches) and settings.epg_batch_delay_ms:
            sleep(settings.epg_batch_delay_ms / 1000)

        if summary.total and summary.failure_rate >= policy.failure_threshold:
            seconds = policy.snooze_delay(attempt)
            log.warning(
                "epg_batch_high_failure",
                batch=index,
                batches=len(batches),
                failure_rate=round(summary.failure_rate, 2),
                snooze_seconds=seconds,
            )
            return SnoozeBatch(seconds=seconds)

    with session(session_factory) as db:
        row = db.get(Provider, provider_id)
        if row is not None:
            row.epg_synced_at = utcnow()

    broadcaster.publish(
        provider_topic(provider_id),
        {
            "status": EPG_SYNC_COMPLETE,
            "provider_id": provider_id,
            "extra": {"synced": stats.synced, "programs": stats.programs, "failed": stats.failed},
        },
    )
    log.info("epg_sync_completed", **{k: v for k, v in stats.as_dict().items() if k != "failed_channels"})
    return Ok(stats)


def cleanup_old_programs(
    provider_id: int,
    hours_ago: int | None = None,
    *,
    session_factory: sessionmaker | None = None,
) -> int:
    """Delete programs of a provider that ended more than ``hours_ago`` hours ago."""
    hours = settings.epg_retention_hours if hours_ago is None else hours_ago
    cutoff = utcnow() - timedelta(hours=hours)
    with session(session_factory) as db:
        result = db.execute(
            delete(EpgProgram).where(
                EpgProgram.provider_id == provider_id, EpgProgram.end_time < cutoff
            )
        )
        deleted = result.rowcount or 0
    logger.info("epg_programs_cleaned", provider_id=provider_id, deleted=deleted, hours=hours)
    return deleted


__all__ = [
    "EPG_SYNC_COMPLETE",
    "EpgChannel",
    "EpgSyncStats",
    "eligible_channels",
    "sync_channel_epg",
    "sync_channel_epg_async",
    "sync_provider_epg",
    "cleanup_old_programs",
]
