"""EPG sync job: ``{provider_id}``; snoozes on a high-failure batch."""

from __future__ import annotations

from ..jobs.worker import JobContext, JobResult, Snooze, Worker, register_worker
from ..pipeline.retry import SnoozeBatch
from ..shared.results import Err, FailureKind, Ok, SyncFailure
from ..usecases.epg_sync import sync_provider_epg


@register_worker
class SyncEpgWorker(Worker):
    name = "sync_epg"
    queue = "sync"
    max_attempts = 5
    unique_period = 300
    unique_fields = ("provider_id",)

    def perform(self, job: JobContext) -> JobResult:
        provider_id = job.args.get("provider_id")
        if provider_id is None:
            return Err(SyncFailure(FailureKind.NOT_FOUND, "job has no provider_id"))

        result = sync_provider_epg(int(provider_id), attempt=job.attempt)
        if isinstance(result, SnoozeBatch):
            return Snooze(result.seconds)
        if isinstance(result, Err):
            return result
        return Ok(result.value.as_dict())
