"""
Worker base class and registry.

A worker is a named, stateless job handler. Its class attributes declare the
queue, attempt budget, priority and uniqueness window its jobs are enqueued
with; ``perform`` receives a detached snapshot of the job and returns one of:

    Ok(value)       job completed
    Snooze(seconds) run the same job again later (does not consume an attempt)
    Err(reason)     job failed; retried with backoff while attempts remain

Workers self-register by name when their module is imported.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Union

from ..infra.exceptions import JobError
from ..shared.results import Err, Ok
from ..shared.types import JobArgs

_workers: dict[str, type[Worker]] = {}


@dataclass(frozen=True)
class Snooze:
    seconds: int


JobResult = Union[Ok[Any], Err, Snooze, None]


@dataclass(frozen=True)
class JobContext:
    """Snapshot of a persisted job handed to ``Worker.perform``."""

    id: int
    worker: str
    args: JobArgs
    attempt: int
    max_attempts: int
    queue: str = "default"
    scheduled_at: datetime | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)


class Worker:
    """Base class for job handlers."""

    name: ClassVar[str] = ""
    queue: ClassVar[str] = "default"
    max_attempts: ClassVar[int] = 3
    priority: ClassVar[int] = 0
    # Seconds during which an identical job is not enqueued twice
    unique_period: ClassVar[int | None] = None
    # Args compared for uniqueness; empty means all args
    unique_fields: ClassVar[tuple[str, ...]] = ()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if not cls.name:
            cls.name = f"{cls.__module__}.{cls.__name__}"

    def perform(self, job: JobContext) -> JobResult:
        raise NotImplementedError

    @classmethod
    def unique_key(cls, args: JobArgs) -> str | None:
        if cls.unique_period is None:
            return None
        fields = cls.unique_fields or tuple(sorted(args))
        parts = ",".join(f"{f}={args.get(f)!r}" for f in fields)
        return f"{cls.name}:{parts}"


def register_worker(cls: type[Worker]) -> type[Worker]:
    """Class decorator adding a worker to the registry."""
    existing = _workers.get(cls.name)
    if existing is not None and existing is not cls:
        raise JobError(f"Worker '{cls.name}' is already registered")
    _workers[cls.name] = cls
    return cls


def get_worker(name: str) -> type[Worker]:
    try:
        return _workers[name]
    except KeyError:
        raise JobError(f"Unknown worker '{name}'") from None


def list_workers() -> list[str]:
    return sorted(_workers)


__all__ = [
    "Worker",
    "JobContext",
    "JobResult",
    "Snooze",
    "register_worker",
    "get_worker",
    "list_workers",
]
