"""
Series details batch job: ``{series_ids, retry_attempt?}``.

Runs the batch through the bounded-concurrency runner, then lets the retry
policy decide: done, snooze the whole batch, or enqueue only the failed ids
as a new job one attempt further on.

``retry_attempt`` counts partial retries and drives their backoff. The snooze
delay follows the job's own attempt, which the queue bumps on every run.
"""

from __future__ import annotations

import asyncio

import structlog

from ..infra.uow import session
from ..jobs.queue import JobQueue
from ..jobs.worker import JobContext, JobResult, Snooze, Worker, register_worker
from ..pipeline.retry import Done, PartialRetry, RetryPolicy, SnoozeBatch
from ..shared.results import Ok
from ..usecases.series_details import sync_series_batch

logger = structlog.get_logger(__name__)


@register_worker
class SyncSeriesDetailsWorker(Worker):
    name = "sync_series_details"
    queue = "series_details"
    max_attempts = 5
    priority = 2

    def perform(self, job: JobContext) -> JobResult:
        series_ids = [int(i) for i in job.args.get("series_ids") or []]
        retry_attempt = int(job.args.get("retry_attempt") or 1)
        log = logger.bind(job_id=job.id, attempt=job.attempt, retry_attempt=retry_attempt, batch=len(series_ids))
        if not series_ids:
            return Ok({"total": 0})

        summary = asyncio.run(sync_series_batch(series_ids))
        policy = RetryPolicy.from_settings()
        decision = policy.evaluate(summary.total, summary.failed_ids, retry_attempt)
        log.info(
            "series_details_batch_finished",
            success=summary.success_count,
            failed=summary.failure_count,
            decision=type(decision).__name__,
        )

        if isinstance(decision, Done):
            return Ok(summary.as_dict())

        if isinstance(decision, SnoozeBatch):
            # Snoozed jobs keep their args; the job attempt is what grows between runs
            return Snooze(policy.snooze_delay(max(job.attempt, retry_attempt)))

        assert isinstance(decision, PartialRetry)
        with session() as db:
            JobQueue(db).enqueue(
                SyncSeriesDetailsWorker,
                {"series_ids": decision.failed_ids, "retry_attempt": decision.next_attempt},
                schedule_in=decision.delay_seconds,
            )
        return Ok(summary.as_dict())
