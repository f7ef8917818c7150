"""
Tests for the job runner and the sync workers it dispatches.
"""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from streamsync.adapters import registry
from streamsync.domain.entities import Favorite, Provider, Series, SyncJob
from streamsync.infra.uow import session
from streamsync.jobs.queue import JobQueue
from streamsync.jobs.runner import CronEntry, JobRunner, default_cron_entries
from streamsync.jobs.worker import Snooze, Worker, list_workers, register_worker
from streamsync.shared.results import Err, FailureKind, Ok, SyncFailure
from streamsync.shared.clock import as_utc, utcnow
from streamsync.shared.types import ProviderType


@register_worker
class ScriptedWorker(Worker):
    """Returns whatever ``args["outcome"]`` asks for."""

    name = "test_scripted"
    max_attempts = 3

    def perform(self, job):
        outcome = job.args.get("outcome")
        if outcome == "snooze":
            return Snooze(45)
        if outcome == "err":
            return Err(SyncFailure(FailureKind.UPSTREAM, "nope"))
        if outcome == "crash":
            raise RuntimeError("worker crashed")
        return Ok(outcome)


@pytest.fixture
def runner(session_factory):
    return JobRunner(session_factory=session_factory, cron_entries=[], max_workers=2)


def _enqueue(session_factory, worker, args=None, **kwargs):
    with session(session_factory) as db:
        return JobQueue(db).enqueue(worker, args or {}, **kwargs).id


def _job(fetch, job_id):
    return fetch(select(SyncJob).where(SyncJob.id == job_id))[0]


def _delay_seconds(job, started):
    return int((as_utc(job.scheduled_at) - started).total_seconds())


def test_all_sync_workers_are_registered():
    assert {
        "sync_provider",
        "sync_all_providers",
        "sync_series_details",
        "sync_epg",
        "sync_system_provider",
        "cleanup_orphaned_data",
    } <= set(list_workers())


@pytest.mark.parametrize(
    "outcome,state",
    [("done", "completed"), ("snooze", "scheduled"), ("err", "retryable"), ("crash", "retryable")],
)
def test_execute_records_outcome(runner, session_factory, fetch, outcome, state):
    job_id = _enqueue(session_factory, ScriptedWorker, {"outcome": outcome})
    [ctx] = runner.claim(1)

    assert runner.execute(ctx) == state
    job = _job(fetch, job_id)
    assert job.state == state
    if outcome == "snooze":
        assert job.max_attempts == 4
    if outcome == "crash":
        assert "worker crashed" in job.errors[0]["error"]


def test_run_once_only_claims_due_jobs(runner, session_factory):
    _enqueue(session_factory, ScriptedWorker, {"outcome": "a"})
    _enqueue(session_factory, ScriptedWorker, {"outcome": "b"}, schedule_in=3600)
    assert runner.run_once() == 1
    assert runner.run_once() == 0


def test_drain_runs_until_empty(runner, session_factory, fetch):
    for i in range(5):
        _enqueue(session_factory, ScriptedWorker, {"outcome": str(i)})

    assert runner.drain() == 5
    assert {j.state for j in fetch(select(SyncJob))} == {"completed"}


class TestCron:
    def test_next_after(self):
        entry = CronEntry("*/5 * * * *", "cleanup_orphaned_data")
        nxt = entry.next_after(datetime(2026, 1, 1, 0, 2, tzinfo=UTC))
        assert (nxt.hour, nxt.minute) == (0, 5)

    def test_invalid_expression(self):
        with pytest.raises(ValueError):
            CronEntry("not a cron", "cleanup_orphaned_data")

    def test_first_tick_only_arms(self, session_factory, fetch):
        runner = JobRunner(
            session_factory=session_factory,
            cron_entries=[CronEntry("*/5 * * * *", "cleanup_orphaned_data")],
        )
        start = datetime(2026, 1, 1, 0, 2, tzinfo=UTC)

        assert runner.enqueue_due_cron(start) == 0
        assert runner.enqueue_due_cron(start + timedelta(minutes=1)) == 0
        assert runner.enqueue_due_cron(start + timedelta(minutes=4)) == 1
        assert [j.worker for j in fetch(select(SyncJob))] == ["cleanup_orphaned_data"]

    def test_default_entries_follow_settings(self, monkeypatch):
        from streamsync.infra.settings import settings

        monkeypatch.setattr(settings, "gindex_enabled", False)
        assert [e.worker for e in default_cron_entries()] == ["cleanup_orphaned_data", "sync_all_providers"]
        monkeypatch.setattr(settings, "gindex_enabled", True)
        assert "sync_system_provider" in [e.worker for e in default_cron_entries()]


class TestWorkers:
    def test_cleanup_worker(self, runner, session_factory, fetch):
        with session(session_factory) as db:
            db.add(Favorite(user_id=1, content_type="movie", content_id=12345))
        _enqueue(session_factory, "cleanup_orphaned_data")

        assert runner.drain() == 1
        assert fetch(select(Favorite)) == []

    def test_sync_all_enqueues_each_active_provider(self, runner, session_factory, fetch, xtream_provider, gindex_provider):
        _enqueue(session_factory, "sync_all_providers")

        [ctx] = runner.claim(1)
        runner.execute(ctx)

        jobs = fetch(select(SyncJob).where(SyncJob.worker == "sync_provider").order_by(SyncJob.id))
        assert [j.args["provider_id"] for j in jobs] == [xtream_provider, gindex_provider]

    def test_sync_all_keeps_status_of_provider_already_syncing(
        self, runner, session_factory, fetch, xtream_provider, gindex_provider
    ):
        running_id = _enqueue(session_factory, "sync_provider", {"provider_id": xtream_provider})
        with session(session_factory) as db:
            db.get(SyncJob, running_id).state = "executing"
            db.get(Provider, xtream_provider).sync_status = "syncing"
        _enqueue(session_factory, "sync_all_providers")

        [ctx] = runner.claim(1)
        runner.execute(ctx)

        statuses = dict(fetch(select(Provider.id, Provider.sync_status), scalars=False))
        assert statuses == {xtream_provider: "syncing", gindex_provider: "pending"}
        jobs = fetch(select(SyncJob).where(SyncJob.worker == "sync_provider"))
        assert len(jobs) == 2

    def test_sync_provider_worker_runs_the_sync(self, runner, session_factory, fetch, xtream_provider, make_source):
        source = make_source(movies=[{"stream_id": 1, "name": "Heat"}])
        registry.register_source(ProviderType.XTREAM, lambda: source)
        _enqueue(session_factory, "sync_provider", {"provider_id": xtream_provider})

        assert runner.drain() == 1
        [job] = fetch(select(SyncJob))
        assert job.state == "completed"

    def test_sync_provider_worker_fails_for_missing_provider(self, runner, session_factory, fetch):
        job_id = _enqueue(session_factory, "sync_provider", {"provider_id": 4040})
        [ctx] = runner.claim(1)
        assert runner.execute(ctx) == "retryable"
        assert "not_found" in _job(fetch, job_id).errors[0]["error"]

    def _seed_series(self, session_factory, provider_id, count):
        with session_factory() as s:
            rows = [
                Series(provider_id=provider_id, series_id=100 + i, name=f"S{i}", content_type="series")
                for i in range(count)
            ]
            s.add_all(rows)
            s.commit()
            return [r.id for r in rows]

    def test_series_details_partial_failure_requeues_failed_ids(
        self, runner, session_factory, fetch, xtream_provider, make_source
    ):
        ids = self._seed_series(session_factory, xtream_provider, 10)
        details = {100 + i: {"seasons": []} for i in range(10)}
        details[100] = RuntimeError("flaky")
        registry.register_source(ProviderType.XTREAM, lambda: make_source(details=details))
        job_id = _enqueue(session_factory, "sync_series_details", {"series_ids": ids})

        [ctx] = runner.claim(1)
        started = utcnow()
        assert runner.execute(ctx) == "completed"

        retry = fetch(select(SyncJob).where(SyncJob.id != job_id))
        assert len(retry) == 1
        assert retry[0].args == {"series_ids": [ids[0]], "retry_attempt": 2}
        assert retry[0].state == "scheduled"
        assert _delay_seconds(retry[0], started) == 60

    def test_series_details_outage_snoozes_batch(self, runner, session_factory, fetch, xtream_provider, make_source):
        ids = self._seed_series(session_factory, xtream_provider, 5)
        registry.register_source(ProviderType.XTREAM, lambda: make_source(details={}))
        job_id = _enqueue(session_factory, "sync_series_details", {"series_ids": ids})

        [ctx] = runner.claim(1)
        assert runner.execute(ctx) == "scheduled"
        assert len(fetch(select(SyncJob))) == 1
        assert _job(fetch, job_id).max_attempts == 6

    def test_series_details_snooze_grows_with_each_attempt(
        self, runner, session_factory, fetch, xtream_provider, make_source
    ):
        ids = self._seed_series(session_factory, xtream_provider, 5)
        registry.register_source(ProviderType.XTREAM, lambda: make_source(details={}))
        job_id = _enqueue(session_factory, "sync_series_details", {"series_ids": ids})

        delays = []
        claim_at = None
        for _ in range(3):
            [ctx] = runner.claim(1, now=claim_at)
            started = utcnow()
            assert runner.execute(ctx) == "scheduled"
            job = _job(fetch, job_id)
            delays.append(_delay_seconds(job, started))
            claim_at = as_utc(job.scheduled_at) + timedelta(seconds=1)

        assert delays == [60, 120, 180]
        assert job.attempt == 3

    def test_series_details_retry_of_retry_backs_off_exponentially(
        self, runner, session_factory, fetch, xtream_provider, make_source
    ):
        ids = self._seed_series(session_factory, xtream_provider, 10)
        details = {100 + i: {"seasons": []} for i in range(10)}
        details[100] = RuntimeError("flaky")
        registry.register_source(ProviderType.XTREAM, lambda: make_source(details=details))
        job_id = _enqueue(session_factory, "sync_series_details", {"series_ids": ids, "retry_attempt": 3})

        [ctx] = runner.claim(1)
        started = utcnow()
        assert runner.execute(ctx) == "completed"

        [retry] = fetch(select(SyncJob).where(SyncJob.id != job_id))
        assert retry.args["retry_attempt"] == 4
        assert _delay_seconds(retry, started) == 240

    def test_epg_worker_snoozes_on_outage(self, runner, session_factory, fetch, xtream_provider, make_source):
        from streamsync.domain.entities import LiveChannel

        with session_factory() as s:
            s.add(LiveChannel(provider_id=xtream_provider, stream_id=1, name="News", epg_channel_id="news.uk"))
            s.commit()
        registry.register_source(
            ProviderType.XTREAM, lambda: make_source(epg={1: RuntimeError("down")})
        )
        job_id = _enqueue(session_factory, "sync_epg", {"provider_id": xtream_provider})

        [ctx] = runner.claim(1)
        assert runner.execute(ctx) == "scheduled"
        assert _job(fetch, job_id).state == "scheduled"

    def test_system_provider_worker_noop_when_disabled(self, runner, session_factory, fetch, monkeypatch):
        from streamsync.infra.settings import settings

        monkeypatch.setattr(settings, "gindex_enabled", False)
        _enqueue(session_factory, "sync_system_provider")
        assert runner.drain() == 1
        assert {j.state for j in fetch(select(SyncJob))} == {"completed"}

