"""
Persistent job queue over the ``sync_jobs`` table.

Jobs move through::

    scheduled --(due)--> available --(fetched)--> executing --> completed
                                                          |--> retryable --(due)--> executing
                                                          |--> scheduled (snoozed)
                                                          '--> discarded

``attempt`` is incremented each time a job is fetched for execution. Every
job transition happens in the caller's session; callers wrap it in a unit of
work.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..domain.entities import SyncJob
from ..infra.exceptions import JobError
from ..shared.clock import as_utc, utcnow
from ..shared.types import JobArgs, JobState
from .worker import JobContext, Worker, get_worker

logger = structlog.get_logger(__name__)

ACTIVE_STATES = (
    JobState.AVAILABLE.value,
    JobState.SCHEDULED.value,
    JobState.EXECUTING.value,
    JobState.RETRYABLE.value,
)
RUNNABLE_STATES = (JobState.AVAILABLE.value, JobState.SCHEDULED.value, JobState.RETRYABLE.value)

# Failed-job backoff: 15s, 30s, 60s ... capped at one hour
RETRY_BACKOFF_BASE = 15
RETRY_BACKOFF_MAX = 3600


def retry_backoff(attempt: int) -> int:
    return min(RETRY_BACKOFF_BASE * 2 ** max(attempt - 1, 0), RETRY_BACKOFF_MAX)


def to_context(job: SyncJob) -> JobContext:
    return JobContext(
        id=job.id,
        worker=job.worker,
        args=dict(job.args or {}),
        attempt=job.attempt,
        max_attempts=job.max_attempts,
        queue=job.queue,
        scheduled_at=as_utc(job.scheduled_at),
        errors=list(job.errors or []),
    )


class JobQueue:
    """Enqueue, fetch and transition jobs using the given session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def enqueue(
        self,
        worker: type[Worker] | str,
        args: JobArgs | None = None,
        *,
        queue: str | None = None,
        max_attempts: int | None = None,
        priority: int | None = None,
        schedule_in: int | float | None = None,
        scheduled_at: datetime | None = None,
        now: datetime | None = None,
    ) -> SyncJob:
        """
        Insert a job for ``worker`` (class or registered name).

        When the worker declares a uniqueness window and an identical job is
        still active within it, that job is returned and nothing is inserted.
        """
        job, _ = self.enqueue_or_existing(
            worker,
            args,
            queue=queue,
            max_attempts=max_attempts,
            priority=priority,
            schedule_in=schedule_in,
            scheduled_at=scheduled_at,
            now=now,
        )
        return job

    def enqueue_or_existing(
        self,
        worker: type[Worker] | str,
        args: JobArgs | None = None,
        *,
        queue: str | None = None,
        max_attempts: int | None = None,
        priority: int | None = None,
        schedule_in: int | float | None = None,
        scheduled_at: datetime | None = None,
        now: datetime | None = None,
    ) -> tuple[SyncJob, bool]:
        """Like ``enqueue``, also reporting whether a new row was inserted."""
        worker_cls = get_worker(worker) if isinstance(worker, str) else worker
        if not worker_cls.name:
            raise JobError("Worker has no name")
        if schedule_in is not None and scheduled_at is not None:
            raise JobError("Pass either schedule_in or scheduled_at, not both")

        args = dict(args or {})
        now = now or utcnow()
        if scheduled_at is not None:
            run_at = as_utc(scheduled_at)
        elif schedule_in:
            run_at = now + timedelta(seconds=schedule_in)
        else:
            run_at = now

        unique_key = worker_cls.unique_key(args)
        if unique_key is not None:
            existing = self._find_duplicate(unique_key, now - timedelta(seconds=worker_cls.unique_period or 0))
            if existing is not None:
                logger.debug("job_enqueue_deduplicated", worker=worker_cls.name, job_id=existing.id)
                return existing, False

        job = SyncJob(
            worker=worker_cls.name,
            queue=queue or worker_cls.queue,
            args=args,
            state=JobState.SCHEDULED.value if run_at > now else JobState.AVAILABLE.value,
            attempt=0,
            max_attempts=max_attempts or worker_cls.max_attempts,
            priority=worker_cls.priority if priority is None else priority,
            unique_key=unique_key,
            errors=[],
            scheduled_at=run_at,
            created_at=now,
        )
        self.db.add(job)
        self.db.flush()
        logger.info(
            "job_enqueued",
            worker=job.worker,
            job_id=job.id,
            queue=job.queue,
            scheduled_at=run_at.isoformat(),
        )
        return job, True

    def _find_duplicate(self, unique_key: str, since: datetime) -> SyncJob | None:
        return self.db.execute(
            select(SyncJob)
            .where(
                SyncJob.unique_key == unique_key,
                SyncJob.state.in_(ACTIVE_STATES),
                SyncJob.created_at >= since,
            )
            .order_by(SyncJob.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def fetch_due(
        self,
        limit: int,
        *,
        queues: list[str] | None = None,
        now: datetime | None = None,
    ) -> list[JobContext]:
        """Claim up to ``limit`` due jobs, mark them executing and bump their attempt."""
        now = now or utcnow()
        stmt = (
            select(SyncJob)
            .where(SyncJob.state.in_(RUNNABLE_STATES), SyncJob.scheduled_at <= now)
            .order_by(SyncJob.priority, SyncJob.scheduled_at, SyncJob.id)
            .limit(limit)
        )
        if queues:
            stmt = stmt.where(SyncJob.queue.in_(queues))
        if self.db.get_bind().dialect.name == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)

        jobs = list(self.db.execute(stmt).scalars())
        for job in jobs:
            job.state = JobState.EXECUTING.value
            job.attempt += 1
            job.attempted_at = now
        self.db.flush()
        return [to_context(job) for job in jobs]

    def get(self, job_id: int) -> SyncJob:
        job = self.db.get(SyncJob, job_id)
        if job is None:
            raise JobError(f"Job {job_id} not found")
        return job

    def complete(self, job_id: int, *, now: datetime | None = None) -> SyncJob:
        job = self.get(job_id)
        job.state = JobState.COMPLETED.value
        job.completed_at = now or utcnow()
        self.db.flush()
        return job

    def snooze(self, job_id: int, seconds: int, *, now: datetime | None = None) -> SyncJob:
        """Re-schedule the job; the attempt it just used is given back."""
        now = now or utcnow()
        job = self.get(job_id)
        job.state = JobState.SCHEDULED.value
        job.scheduled_at = now + timedelta(seconds=seconds)
        job.max_attempts += 1
        self.db.flush()
        return job

    def fail(self, job_id: int, error: str, *, now: datetime | None = None) -> SyncJob:
        """Record ``error``; retry with backoff while attempts remain, otherwise discard."""
        now = now or utcnow()
        job = self.get(job_id)
        job.errors = [*(job.errors or []), {"attempt": job.attempt, "at": now.isoformat(), "error": error}]
        if job.attempt >= job.max_attempts:
            job.state = JobState.DISCARDED.value
            job.completed_at = now
        else:
            job.state = JobState.RETRYABLE.value
            job.scheduled_at = now + timedelta(seconds=retry_backoff(job.attempt))
        self.db.flush()
        return job

    def count(self, *, worker: str | None = None, states: tuple[str, ...] = ACTIVE_STATES) -> int:
        stmt = select(func.count(SyncJob.id)).where(SyncJob.state.in_(states))
        if worker is not None:
            stmt = stmt.where(SyncJob.worker == worker)
        return int(self.db.execute(stmt).scalar_one())

    def list_jobs(
        self,
        *,
        worker: str | None = None,
        states: tuple[str, ...] | None = None,
        limit: int = 50,
    ) -> list[SyncJob]:
        stmt = select(SyncJob).order_by(SyncJob.id.desc()).limit(limit)
        if worker is not None:
            stmt = stmt.where(SyncJob.worker == worker)
        if states:
            stmt = stmt.where(SyncJob.state.in_(states))
        return list(self.db.execute(stmt).scalars())


def job_to_dict(job: SyncJob) -> dict[str, Any]:
    scheduled = as_utc(job.scheduled_at)
    return {
        "id": job.id,
        "worker": job.worker,
        "queue": job.queue,
        "state": job.state,
        "args": job.args,
        "attempt": job.attempt,
        "max_attempts": job.max_attempts,
        "priority": job.priority,
        "scheduled_at": scheduled.isoformat() if scheduled else None,
        "errors": job.errors or [],
    }


__all__ = ["JobQueue", "retry_backoff", "job_to_dict", "to_context"]
