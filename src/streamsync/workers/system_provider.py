"""Periodic job keeping the configured drive-index system provider present and synced."""

from __future__ import annotations

import structlog

from ..infra.settings import settings
from ..infra.uow import session
from ..jobs.worker import JobContext, JobResult, Worker, register_worker
from ..shared.results import Err, Ok
from ..usecases.provider_sync import sync_provider
from ..usecases.providers import ensure_system_provider

logger = structlog.get_logger(__name__)


@register_worker
class SyncSystemProviderWorker(Worker):
    name = "sync_system_provider"
    queue = "sync"
    max_attempts = 3

    def perform(self, job: JobContext) -> JobResult:
        if not settings.gindex_enabled:
            logger.debug("system_provider_disabled")
            return Ok(None)

        with session() as db:
            provider = ensure_system_provider(db)
            provider_id = provider.id if provider is not None else None
        if provider_id is None:
            return Ok(None)

        result = sync_provider(provider_id)
        if isinstance(result, Err):
            logger.error("system_provider_sync_failed", provider_id=provider_id, reason=str(result.reason))
            return result
        return Ok(result.value.as_dict())
