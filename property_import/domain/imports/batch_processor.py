"""
Batch execution of per-row creation functions.

Rows are isolated from each other: a failing row is classified and
recorded, and processing continues with the next row. Batches above the
parallel threshold can fan out across a thread pool; the pool is always
drained (settle-all) before the batch result is returned.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

from property_import.api.schemas.shared import ClassifiedError, EntityType, Severity
from property_import.domain.imports.cache import EntityCacheRegistry
from property_import.domain.imports.errors import RowFailure, RowOutcome, classify_error

logger = logging.getLogger(__name__)

PARALLEL_THRESHOLD = 10


@dataclass
class ProcessorContext:
    import_id: str
    entity_type: EntityType
    store: Any
    caches: EntityCacheRegistry
    user_id: str = "import-system"


@dataclass
class BatchResult:
    successful_rows: int = 0
    processed_rows: int = 0
    errors: List[ClassifiedError] = field(default_factory=list)

    def merge(self, other: "BatchResult") -> "BatchResult":
        self.successful_rows += other.successful_rows
        self.processed_rows += other.processed_rows
        self.errors.extend(other.errors)
        return self

    @property
    def failed_rows(self) -> int:
        return self.processed_rows - self.successful_rows


CreationFn = Callable[[Any, ProcessorContext], RowOutcome]


def iter_batches(rows: Sequence[Any], batch_size: int) -> Iterator[Sequence[Any]]:
    """Yield fixed-size contiguous slices of ``rows``."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    for start in range(0, len(rows), batch_size):
        yield rows[start:start + batch_size]


def _row_position(row: Any) -> int:
    return int(getattr(row, "position", 0) or 0)


def run_row(row: Any, creation_fn: CreationFn, context: ProcessorContext) -> Tuple[bool, Optional[ClassifiedError]]:
    """
    Execute one row and fold its outcome into (counts_as_success, error).

    A row counts as successful unless its classified error is ERROR severity;
    duplicate warnings are handled, skipped rows.
    """
    position = _row_position(row)
    try:
        outcome = creation_fn(row, context)
    except Exception as exc:
        logger.warning(
            "Row %s of %s import %s raised %s: %s",
            position,
            context.entity_type.value,
            context.import_id,
            type(exc).__name__,
            exc,
        )
        error = classify_error(exc, position, "general", None)
        return error.severity != Severity.ERROR, error

    if isinstance(outcome, RowFailure):
        error = classify_error(outcome, position, outcome.field, outcome.value)
        return error.severity != Severity.ERROR, error
    return True, None


class BatchProcessor:
    def __init__(
        self,
        enable_parallel: bool = False,
        max_workers: int = 4,
        parallel_threshold: int = PARALLEL_THRESHOLD,
    ):
        self.enable_parallel = enable_parallel
        self.max_workers = max(1, max_workers)
        self.parallel_threshold = parallel_threshold

    def process_batch(
        self,
        rows: Sequence[Any],
        creation_fn: CreationFn,
        context: ProcessorContext,
    ) -> BatchResult:
        batch_start = time.time()
        if self.enable_parallel and len(rows) > self.parallel_threshold:
            result = self._process_parallel(rows, creation_fn, context)
            mode = "parallel"
        else:
            result = self._process_sequential(rows, creation_fn, context)
            mode = "sequential"

        elapsed = time.time() - batch_start
        logger.info(
            "⏱️  %s batch of %d %s rows: %d ok, %d errors in %.2fs (import %s)",
            mode,
            len(rows),
            context.entity_type.value,
            result.successful_rows,
            len(result.errors),
            elapsed,
            context.import_id,
        )
        return result

    def _process_sequential(self, rows, creation_fn, context) -> BatchResult:
        result = BatchResult()
        for row in rows:
            succeeded, error = run_row(row, creation_fn, context)
            self._record(result, succeeded, error)
        return result

    def _process_parallel(self, rows, creation_fn, context) -> BatchResult:
        result = BatchResult()
        workers = min(self.max_workers, len(rows))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="import-row") as executor:
            future_to_row = {
                executor.submit(run_row, row, creation_fn, context): row
                for row in rows
            }
            done, _ = wait(future_to_row, return_when=ALL_COMPLETED)

        for future in done:
            row = future_to_row[future]
            try:
                succeeded, error = future.result()
            except Exception as exc:  # pragma: no cover - run_row already classifies
                succeeded = False
                error = classify_error(exc, _row_position(row), "general", None)
            self._record(result, succeeded, error)

        result.errors.sort(key=lambda error: error.position)
        return result

    @staticmethod
    def _record(result: BatchResult, succeeded: bool, error: Optional[ClassifiedError]) -> None:
        result.processed_rows += 1
        if succeeded:
            result.successful_rows += 1
        if error is not None:
            result.errors.append(error)
