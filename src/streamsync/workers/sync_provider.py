"""Full provider sync job: ``{provider_id, series_details?}``."""

from __future__ import annotations

import structlog

from ..jobs.worker import JobContext, JobResult, Worker, register_worker
from ..shared.results import Err, FailureKind, Ok, SyncFailure
from ..shared.types import SeriesDetailsMode
from ..usecases.provider_sync import sync_provider

logger = structlog.get_logger(__name__)


@register_worker
class SyncProviderWorker(Worker):
    name = "sync_provider"
    queue = "sync"
    max_attempts = 3
    unique_period = 300
    unique_fields = ("provider_id",)

    def perform(self, job: JobContext) -> JobResult:
        provider_id = job.args.get("provider_id")
        if provider_id is None:
            return Err(SyncFailure(FailureKind.NOT_FOUND, "job has no provider_id"))

        mode = SeriesDetailsMode.parse(job.args.get("series_details", SeriesDetailsMode.SKIP))
        result = sync_provider(int(provider_id), series_details=mode)
        if isinstance(result, Err):
            logger.warning("provider_sync_job_failed", provider_id=provider_id, reason=str(result.reason))
            return result
        return Ok(result.value.as_dict())
