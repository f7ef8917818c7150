"""
Adaptive retry scheduling for fan-out batches.

After a bounded-concurrency run the batch's failure rate picks one of three
outcomes:

    rate == 0               Done
    rate >= threshold       SnoozeBatch   whole batch again after min(base * attempt, max)
    0 < rate < threshold    PartialRetry  failed ids only, after min(base * 2**(attempt-1), max)

A high failure rate reads as an upstream outage, so the whole original batch
is deferred (including items that succeeded; upserts make that safe). A low
rate reads as a few bad items, so only those are retried.
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field
from typing import Union

from ..infra.settings import settings


@dataclass(frozen=True)
class Done:
    pass


@dataclass(frozen=True)
class SnoozeBatch:
    seconds: int


@dataclass(frozen=True)
class PartialRetry:
    failed_ids: list[Hashable] = field(default_factory=list)
    delay_seconds: int = 0
    next_attempt: int = 2


RetryDecision = Union[Done, SnoozeBatch, PartialRetry]


@dataclass(frozen=True)
class RetryPolicy:
    failure_threshold: float = 0.8
    base_delay: int = 60
    max_delay: int = 900

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(
            failure_threshold=settings.retry_failure_threshold,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )

    def snooze_delay(self, attempt: int) -> int:
        return min(self.base_delay * max(attempt, 1), self.max_delay)

    def backoff_delay(self, attempt: int) -> int:
        return min(self.base_delay * 2 ** (max(attempt, 1) - 1), self.max_delay)

    def evaluate(self, total: int, failed_ids: Sequence[Hashable], attempt: int) -> RetryDecision:
        if total <= 0 or not failed_ids:
            return Done()

        failure_rate = len(failed_ids) / total
        if failure_rate >= self.failure_threshold:
            return SnoozeBatch(seconds=self.snooze_delay(attempt))

        return PartialRetry(
            failed_ids=list(failed_ids),
            delay_seconds=self.backoff_delay(attempt),
            next_attempt=attempt + 1,
        )


__all__ = ["Done", "SnoozeBatch", "PartialRetry", "RetryDecision", "RetryPolicy"]
