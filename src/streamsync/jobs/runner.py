"""
Job runner: polls due jobs, executes them on a bounded thread pool and
enqueues periodic (cron) jobs.

Each job runs isolated: it gets a snapshot of its row, opens its own units of
work, and its outcome is written back in a separate transaction. A crashing
worker is recorded as a failed attempt and never takes the runner down.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from cron_converter import Cron
from sqlalchemy.orm import sessionmaker

from .. import workers as _workers  # noqa: F401  (populates the worker registry)
from ..infra.settings import settings
from ..infra.uow import session
from ..shared.clock import utcnow
from ..shared.results import Err, FailureKind, SyncFailure
from ..shared.types import JobArgs
from .queue import JobQueue
from .worker import JobContext, Snooze, get_worker

logger = structlog.get_logger(__name__)


@dataclass
class CronEntry:
    """Enqueue ``worker`` with ``args`` on every tick of ``expression``."""

    expression: str
    worker: str
    args: JobArgs = field(default_factory=dict)

    def __post_init__(self) -> None:
        try:
            self._cron = Cron(self.expression)
        except Exception as exc:
            raise ValueError(f"Invalid cron schedule '{self.expression}': {exc}") from exc

    def next_after(self, moment: datetime) -> datetime:
        return self._cron.schedule(start_date=moment).next()


def default_cron_entries() -> list[CronEntry]:
    entries = [
        CronEntry(settings.cleanup_cron, "cleanup_orphaned_data"),
        CronEntry(settings.sync_all_cron, "sync_all_providers"),
    ]
    if settings.gindex_enabled:
        entries.append(CronEntry(settings.gindex_sync_cron, "sync_system_provider"))
    return entries


class JobRunner:
    def __init__(
        self,
        *,
        session_factory: sessionmaker | None = None,
        queues: list[str] | None = None,
        max_workers: int | None = None,
        poll_interval: float | None = None,
        cron_entries: list[CronEntry] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.queues = queues
        self.max_workers = max_workers or settings.job_max_workers
        self.poll_interval = poll_interval or settings.job_poll_interval
        self.cron_entries = default_cron_entries() if cron_entries is None else cron_entries
        self._next_runs: dict[int, datetime] = {}

    # Execution

    def execute(self, ctx: JobContext) -> str:
        """Run one claimed job and persist its outcome; returns the resulting state."""
        log = logger.bind(job_id=ctx.id, worker=ctx.worker, attempt=ctx.attempt)
        log.info("job_started")

        try:
            result = get_worker(ctx.worker)().perform(ctx)
        except Exception as e:
            log.error("job_crashed", error=str(e), exc_info=True)
            result = Err(SyncFailure.from_exception(FailureKind.UNEXPECTED, e))

        with session(self.session_factory) as db:
            queue = JobQueue(db)
            if isinstance(result, Snooze):
                job = queue.snooze(ctx.id, result.seconds)
                log.info("job_snoozed", seconds=result.seconds)
            elif isinstance(result, Err):
                job = queue.fail(ctx.id, str(result.reason))
                log.warning("job_failed", reason=str(result.reason), state=job.state)
            else:
                job = queue.complete(ctx.id)
                log.info("job_completed")
            return job.state

    def claim(self, limit: int, now: datetime | None = None) -> list[JobContext]:
        with session(self.session_factory) as db:
            return JobQueue(db).fetch_due(limit, queues=self.queues, now=now)

    def run_once(self, limit: int | None = None, now: datetime | None = None) -> int:
        """Claim due jobs and execute them inline; returns the number executed."""
        claimed = self.claim(limit or self.max_workers, now=now)
        for ctx in claimed:
            self.execute(ctx)
        return len(claimed)

    def drain(self, max_rounds: int = 100) -> int:
        """Execute due jobs inline until none are left (or ``max_rounds`` is hit)."""
        total = 0
        for _ in range(max_rounds):
            ran = self.run_once()
            if not ran:
                break
            total += ran
        return total

    # Cron

    def enqueue_due_cron(self, now: datetime | None = None) -> int:
        """Enqueue every cron job whose tick has passed; the first call only arms the schedules."""
        now = now or utcnow()
        enqueued = 0
        for index, entry in enumerate(self.cron_entries):
            next_run = self._next_runs.get(index)
            if next_run is None:
                self._next_runs[index] = entry.next_after(now)
                continue
            if now < next_run:
                continue
            with session(self.session_factory) as db:
                JobQueue(db).enqueue(entry.worker, entry.args, now=now)
            self._next_runs[index] = entry.next_after(now)
            enqueued += 1
            logger.info("cron_job_enqueued", worker=entry.worker, next_run=self._next_runs[index].isoformat())
        return enqueued

    # Loop

    def run_forever(self, stop_event: threading.Event | None = None) -> None:
        stop = stop_event or threading.Event()
        inflight: set[Future[str]] = set()
        logger.info("job_runner_started", max_workers=self.max_workers, queues=self.queues)

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="streamsync-job") as pool:
            while not stop.is_set():
                try:
                    self.enqueue_due_cron()
                    inflight = {f for f in inflight if not f.done()}
                    free = self.max_workers - len(inflight)
                    if free > 0:
                        for ctx in self.claim(free):
                            inflight.add(pool.submit(self.execute, ctx))
                except Exception as e:
                    logger.error("job_runner_poll_failed", error=str(e), exc_info=True)
                stop.wait(self.poll_interval)

        logger.info("job_runner_stopped")


__all__ = ["CronEntry", "JobRunner", "default_cron_entries"]
