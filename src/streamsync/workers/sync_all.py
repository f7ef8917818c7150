"""Periodic job enqueuing a provider sync for every active provider."""

from __future__ import annotations

import structlog

from ..infra.uow import session
from ..jobs.worker import JobContext, JobResult, Worker, register_worker
from ..shared.results import Ok
from ..shared.types import SeriesDetailsMode
from ..usecases.providers import active_provider_ids, enqueue_sync

logger = structlog.get_logger(__name__)


@register_worker
class SyncAllProvidersWorker(Worker):
    name = "sync_all_providers"
    queue = "sync"
    max_attempts = 3

    def perform(self, job: JobContext) -> JobResult:
        with session() as db:
            provider_ids = active_provider_ids(db)
            for provider_id in provider_ids:
                enqueue_sync(db, provider_id, series_details=SeriesDetailsMode.SKIP)

        logger.info("sync_all_enqueued", providers=len(provider_ids))
        return Ok(len(provider_ids))
