"""
Bounded-concurrency task runner.

Runs one coroutine per item with at most ``max_concurrency`` in flight and a
per-item timeout. Every item ends up classified as ``ok``, ``error`` or
``timeout``; a timed-out coroutine is cancelled and its result discarded while
its siblings keep running. Completion order is not preserved, only the
aggregate counts and the failed ids are meaningful.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

import structlog

from ..infra.settings import settings
from ..shared.results import Err, Ok

logger = structlog.get_logger(__name__)

T = TypeVar("T")

OutcomeStatus = Literal["ok", "error", "timeout"]


@dataclass
class TaskOutcome(Generic[T]):
    item: T
    item_id: Hashable
    status: OutcomeStatus
    result: Any = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass
class RunSummary(Generic[T]):
    total: int = 0
    success_count: int = 0
    failure_count: int = 0
    timeout_count: int = 0
    failed_ids: list[Hashable] = field(default_factory=list)
    outcomes: list[TaskOutcome[T]] = field(default_factory=list)

    @property
    def failure_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.failure_count / self.total

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "timeout_count": self.timeout_count,
            "failed_ids": list(self.failed_ids),
        }


async def run_bounded(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[Any]],
    *,
    max_concurrency: int | None = None,
    timeout: float | None = None,
    key: Callable[[T], Hashable] | None = None,
) -> RunSummary[T]:
    """
    Run ``operation(item)`` for every item with bounded concurrency.

    ``operation`` may return a plain value, ``Ok(value)`` or ``Err(reason)``;
    ``Err`` and raised exceptions classify as ``error``. Exceeding ``timeout``
    classifies as ``timeout`` and counts as a failure.
    """
    limit = max_concurrency or settings.task_max_concurrency
    if limit <= 0:
        raise ValueError("max_concurrency must be positive")
    per_item_timeout = timeout if timeout is not None else settings.task_timeout_seconds
    key_of = key or (lambda item: item)  # type: ignore[assignment,return-value]

    semaphore = asyncio.Semaphore(limit)

    async def _run_one(item: T) -> TaskOutcome[T]:
        item_id = key_of(item)
        async with semaphore:
            try:
                value = await asyncio.wait_for(operation(item), timeout=per_item_timeout)
            except asyncio.TimeoutError:
                logger.warning("task_timeout", item_id=item_id, timeout=per_item_timeout)
                return TaskOutcome(item, item_id, "timeout", reason="timeout")
            except Exception as e:
                logger.warning("task_failed", item_id=item_id, error=str(e))
                return TaskOutcome(item, item_id, "error", reason=f"{type(e).__name__}: {e}")

        if isinstance(value, Err):
            return TaskOutcome(item, item_id, "error", reason=str(value.reason))
        if isinstance(value, Ok):
            value = value.value
        return TaskOutcome(item, item_id, "ok", result=value)

    outcomes = await asyncio.gather(*(_run_one(item) for item in items))

    summary: RunSummary[T] = RunSummary(total=len(items), outcomes=list(outcomes))
    for outcome in outcomes:
        if outcome.ok:
            summary.success_count += 1
            continue
        summary.failure_count += 1
        summary.failed_ids.append(outcome.item_id)
        if outcome.status == "timeout":
            summary.timeout_count += 1

    logger.debug("bounded_run_finished", limit=limit, **summary.as_dict())
    return summary


def run_bounded_sync(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[Any]],
    **kwargs: Any,
) -> RunSummary[T]:
    """Blocking wrapper for callers outside an event loop (job workers, CLI)."""
    return asyncio.run(run_bounded(items, operation, **kwargs))


__all__ = ["TaskOutcome", "RunSummary", "run_bounded", "run_bounded_sync"]
