"""Per-item isolation for batch jobs.

Batch jobs (score recalculation, segment rebuilds, attribution backfills,
forecast accuracy sweeps) run every item independently: a failing item is
logged with its id and reported in the summary, and the batch moves on.
All item writes are upserts, so a batch can be re-run after a crash.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class BatchError:
    item_id: str
    error: str
    error_type: str


@dataclass(frozen=True)
class BatchResult(Generic[R]):
    """Outcome of a batch job.

    Attributes
    ----------
    processed:
        Items attempted
    succeeded:
        Items that completed
    failed:
        Items that raised; each has an entry in ``errors``
    results:
        Per-item return values of the successful items, in input order
    """

    processed: int
    succeeded: int
    failed: int
    errors: tuple[BatchError, ...] = ()
    results: tuple[R, ...] = ()

    @property
    def is_partial_failure(self) -> bool:
        return 0 < self.failed


def run_batch(
    job: str,
    items: Iterable[T],
    operation: Callable[[T], R],
    item_id: Callable[[T], str] = str,
) -> BatchResult[R]:
    """Apply ``operation`` to each item, isolating failures per item."""
    results: list[R] = []
    errors: list[BatchError] = []
    processed = 0
    for item in items:
        processed += 1
        key = item_id(item)
        try:
            results.append(operation(item))
        except Exception as exc:
            logger.warning(
                "%s failed for item %s: %s: %s", job, key, type(exc).__name__, exc
            )
            errors.append(
                BatchError(item_id=key, error=str(exc), error_type=type(exc).__name__)
            )

    logger.info(
        "%s complete: processed=%d succeeded=%d failed=%d",
        job,
        processed,
        len(results),
        len(errors),
    )
    return BatchResult(
        processed=processed,
        succeeded=len(results),
        failed=len(errors),
        errors=tuple(errors),
        results=tuple(results),
    )
