from datetime import timedelta

import pytest

from streamsync.infra.exceptions import JobError
from streamsync.infra.uow import session
from streamsync.jobs.queue import JobQueue, retry_backoff
from streamsync.jobs.worker import Worker, get_worker, register_worker
from streamsync.shared.clock import as_utc, utcnow
from streamsync.shared.results import Ok


@register_worker
class EchoWorker(Worker):
    name = "test_echo"
    queue = "default"
    max_attempts = 2

    def perform(self, job):
        return Ok(job.args)


@register_worker
class UniqueEchoWorker(Worker):
    name = "test_unique_echo"
    unique_period = 60
    unique_fields = ("key",)

    def perform(self, job):
        return Ok(None)


@pytest.fixture
def queue_session(session_factory):
    with session(session_factory) as db:
        yield JobQueue(db)


def test_enqueue_now_is_available(queue_session):
    job = queue_session.enqueue(EchoWorker, {"x": 1})
    assert job.state == "available"
    assert job.attempt == 0
    assert job.max_attempts == 2


def test_enqueue_later_is_scheduled(queue_session):
    now = utcnow()
    job = queue_session.enqueue("test_echo", {}, schedule_in=30, now=now)
    assert job.state == "scheduled"
    assert as_utc(job.scheduled_at) == now + timedelta(seconds=30)


def test_enqueue_rejects_both_schedules(queue_session):
    with pytest.raises(JobError):
        queue_session.enqueue(EchoWorker, {}, schedule_in=5, scheduled_at=utcnow())


def test_unknown_worker(queue_session):
    with pytest.raises(JobError):
        queue_session.enqueue("no_such_worker", {})


def test_unique_jobs_are_deduplicated_within_period(queue_session):
    now = utcnow()
    first = queue_session.enqueue(UniqueEchoWorker, {"key": "a", "noise": 1}, now=now)
    again = queue_session.enqueue(UniqueEchoWorker, {"key": "a", "noise": 2}, now=now + timedelta(seconds=30))
    other = queue_session.enqueue(UniqueEchoWorker, {"key": "b"}, now=now)
    later = queue_session.enqueue(UniqueEchoWorker, {"key": "a"}, now=now + timedelta(seconds=120))

    assert again.id == first.id
    assert other.id != first.id
    assert later.id != first.id


def test_enqueue_or_existing_reports_insertion(queue_session):
    now = utcnow()
    first, created = queue_session.enqueue_or_existing(UniqueEchoWorker, {"key": "a"}, now=now)
    again, created_again = queue_session.enqueue_or_existing(UniqueEchoWorker, {"key": "a"}, now=now)

    assert created is True
    assert created_again is False
    assert again.id == first.id


def test_fetch_due_claims_in_priority_order(queue_session):
    now = utcnow()
    low = queue_session.enqueue(EchoWorker, {"n": "low"}, priority=5, now=now)
    high = queue_session.enqueue(EchoWorker, {"n": "high"}, priority=0, now=now)
    queue_session.enqueue(EchoWorker, {"n": "future"}, schedule_in=600, now=now)

    claimed = queue_session.fetch_due(10, now=now + timedelta(seconds=1))

    assert [c.id for c in claimed] == [high.id, low.id]
    assert all(c.attempt == 1 for c in claimed)
    assert queue_session.get(high.id).state == "executing"
    assert queue_session.fetch_due(10, now=now + timedelta(seconds=1)) == []


def test_fetch_due_filters_queues(queue_session):
    queue_session.enqueue(EchoWorker, {}, queue="a")
    queue_session.enqueue(EchoWorker, {}, queue="b")
    claimed = queue_session.fetch_due(10, queues=["b"], now=utcnow() + timedelta(seconds=1))
    assert [c.queue for c in claimed] == ["b"]


def test_failures_back_off_then_discard(queue_session):
    now = utcnow()
    job = queue_session.enqueue(EchoWorker, {}, now=now)

    queue_session.fetch_due(1, now=now)
    failed = queue_session.fail(job.id, "boom", now=now)
    assert failed.state == "retryable"
    assert as_utc(failed.scheduled_at) == now + timedelta(seconds=retry_backoff(1))

    retry_at = now + timedelta(seconds=retry_backoff(1))
    queue_session.fetch_due(1, now=retry_at)
    discarded = queue_session.fail(job.id, "boom again", now=retry_at)
    assert discarded.state == "discarded"
    assert [e["error"] for e in discarded.errors] == ["boom", "boom again"]


def test_snooze_gives_the_attempt_back(queue_session):
    now = utcnow()
    job = queue_session.enqueue(EchoWorker, {}, now=now)
    queue_session.fetch_due(1, now=now)

    snoozed = queue_session.snooze(job.id, 120, now=now)

    assert snoozed.state == "scheduled"
    assert snoozed.max_attempts == 3
    assert as_utc(snoozed.scheduled_at) == now + timedelta(seconds=120)


def test_complete_and_count(queue_session):
    job = queue_session.enqueue(EchoWorker, {})
    assert queue_session.count(worker="test_echo") == 1
    queue_session.complete(job.id)
    assert queue_session.count(worker="test_echo") == 0
    assert [j.id for j in queue_session.list_jobs(states=("completed",))] == [job.id]


@pytest.mark.parametrize("attempt,expected", [(1, 15), (2, 30), (3, 60), (20, 3600)])
def test_retry_backoff(attempt, expected):
    assert retry_backoff(attempt) == expected


def test_duplicate_worker_name_is_rejected():
    class Impostor(Worker):
        name = "test_echo"

    with pytest.raises(JobError):
        register_worker(Impostor)
    assert get_worker("test_echo") is EchoWorker
