"""
Tagged success/failure values returned across sync layer boundaries.

Writers, reconcilers and phases return ``Ok``/``Err`` for expected failure
classes instead of raising, so callers that fan out work can count failures
without a try/except around every call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class FailureKind(str, Enum):
    """Categories of sync failure surfaced to callers."""

    NOT_FOUND = "not_found"
    NOT_CONFIGURED = "not_configured"
    UPSTREAM = "upstream"
    PERSISTENCE = "persistence"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class SyncFailure:
    kind: FailureKind
    message: str = ""
    phase: str | None = None

    def __str__(self) -> str:
        prefix = f"{self.phase}: " if self.phase else ""
        return f"{prefix}{self.kind.value}" + (f" ({self.message})" if self.message else "")

    @classmethod
    def from_exception(cls, kind: FailureKind, exc: BaseException, phase: str | None = None) -> SyncFailure:
        return cls(kind=kind, message=f"{type(exc).__name__}: {exc}", phase=phase)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    reason: SyncFailure

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


__all__ = ["FailureKind", "SyncFailure", "Ok", "Err", "Result"]
