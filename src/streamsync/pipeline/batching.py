"""
Chunked batch processing with per-chunk failure isolation.

Items are split into consecutive chunks in input order. Each chunk goes to a
caller-supplied function; whatever it returns is folded into running totals.
A chunk that raises (or returns ``Err``) contributes nothing and the next chunk
still runs.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from ..shared.results import Err

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class ChunkResult:
    """What one chunk contributed: items stored, items rejected, nested children stored."""

    succeeded: int = 0
    failed: int = 0
    children: int = 0


@dataclass
class BatchStats:
    """Aggregate over all chunks of one batch run."""

    processed: int = 0
    failed: int = 0
    children: int = 0
    chunks: int = 0
    failed_chunks: int = 0
    errors: list[str] = field(default_factory=list)

    def add(self, result: ChunkResult) -> None:
        self.processed += result.succeeded
        self.failed += result.failed
        self.children += result.children

    def as_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "children": self.children,
            "chunks": self.chunks,
            "failed_chunks": self.failed_chunks,
        }


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield ``ceil(len(items) / size)`` consecutive chunks, preserving order."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def process_in_chunks(
    items: Sequence[T],
    chunk_size: int,
    process_chunk: Callable[[list[T]], ChunkResult | Err],
    *,
    label: str = "items",
) -> BatchStats:
    """Run ``process_chunk`` over each chunk of ``items`` and aggregate the results."""
    stats = BatchStats()

    for index, chunk in enumerate(chunked(items, chunk_size)):
        stats.chunks += 1
        try:
            outcome = process_chunk(chunk)
        except Exception as e:
            stats.failed_chunks += 1
            stats.failed += len(chunk)
            stats.errors.append(f"chunk {index}: {type(e).__name__}: {e}")
            logger.error(
                "chunk_failed",
                label=label,
                chunk_index=index,
                chunk_size=len(chunk),
                error=str(e),
                exc_info=True,
            )
            continue

        if isinstance(outcome, Err):
            stats.failed_chunks += 1
            stats.failed += len(chunk)
            stats.errors.append(f"chunk {index}: {outcome.reason}")
            logger.warning(
                "chunk_rejected",
                label=label,
                chunk_index=index,
                chunk_size=len(chunk),
                reason=str(outcome.reason),
            )
            continue

        stats.add(outcome)

    logger.debug("batch_processed", label=label, **stats.as_dict())
    return stats


__all__ = ["ChunkResult", "BatchStats", "chunked", "process_in_chunks"]
