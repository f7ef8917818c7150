"""Daily orphan cleanup job."""

from __future__ import annotations

from ..jobs.worker import JobContext, JobResult, Worker, register_worker
from ..shared.results import Ok
from ..usecases.cleanup_orphans import cleanup_orphaned_user_data


@register_worker
class CleanupOrphanedDataWorker(Worker):
    name = "cleanup_orphaned_data"
    queue = "maintenance"
    max_attempts = 3
    priority = 3

    def perform(self, job: JobContext) -> JobResult:
        return Ok(cleanup_orphaned_user_data())
