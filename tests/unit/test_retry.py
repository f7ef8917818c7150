import pytest

from streamsync.pipeline.retry import Done, PartialRetry, RetryPolicy, SnoozeBatch


@pytest.fixture
def policy():
    return RetryPolicy(failure_threshold=0.8, base_delay=60, max_delay=900)


def test_no_failures_is_done(policy):
    assert policy.evaluate(50, [], attempt=1) == Done()
    assert policy.evaluate(0, [], attempt=3) == Done()


def test_high_failure_rate_snoozes_whole_batch(policy):
    decision = policy.evaluate(50, list(range(40)), attempt=2)
    assert decision == SnoozeBatch(seconds=120)


def test_snooze_delay_is_capped(policy):
    assert policy.evaluate(10, list(range(10)), attempt=30) == SnoozeBatch(seconds=900)


def test_low_failure_rate_retries_only_failed_ids(policy):
    decision = policy.evaluate(50, [3, 7], attempt=1)
    assert isinstance(decision, PartialRetry)
    assert decision.failed_ids == [3, 7]
    assert decision.delay_seconds == 60
    assert decision.next_attempt == 2


@pytest.mark.parametrize("attempt,expected", [(1, 60), (2, 120), (3, 240), (4, 480), (5, 900), (9, 900)])
def test_partial_retry_backoff_is_exponential(policy, attempt, expected):
    assert policy.backoff_delay(attempt) == expected


def test_threshold_boundary_snoozes(policy):
    assert isinstance(policy.evaluate(10, list(range(8)), attempt=1), SnoozeBatch)
    assert isinstance(policy.evaluate(10, list(range(7)), attempt=1), PartialRetry)
