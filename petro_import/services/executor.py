from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from ..db.store import RowStore, StoreError, StoreUnavailableError
from ..logging.error_log import ErrorLogBuffer
from ..models.error_record import ErrorRecord
from ..models.import_result import BatchOutcome, UpsertResult
from ..models.specimen import SpecimenRecord
from .entities import EntitySchema
from .progress import BatchProgress

"""Batch upsert execution.

Records are written in contiguous batches, one upsert call per batch, strictly
one after another. A failing batch is recorded and skipped; only an unreachable
store stops the run. No retries.
"""

logger = logging.getLogger(__name__)


def partition(count: int, batch_size: int) -> list[tuple[int, int]]:
    """Half-open [start, stop) bounds of contiguous batches."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return [(start, min(start + batch_size, count)) for start in range(0, count, batch_size)]


def execute(
    store: RowStore,
    schema: EntitySchema,
    records: Sequence[SpecimenRecord],
    batch_size: int,
    *,
    delay_seconds: float = 0.0,
    check_existing: bool = False,
    error_log: ErrorLogBuffer | None = None,
    source: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> UpsertResult:
    """Upsert records batch by batch.

    Raises:
        StoreUnavailableError: the store could not be reached; batches already
            written stay written.
    """
    bounds = partition(len(records), batch_size)
    outcomes: list[BatchOutcome] = []

    with BatchProgress(len(bounds), description=f"Importing {schema.label}") as progress:
        for number, (start, stop) in enumerate(bounds, start=1):
            batch = records[start:stop]
            rows = [r.as_row(schema.code_column, schema.name_column) for r in batch]
            logger.info("importing batch %d of %d (%d %s)", number, len(bounds), len(batch), schema.label)

            batch_start = time.perf_counter()
            inserted = updated = None
            try:
                if check_existing:
                    existing = store.existing_codes(schema.table, schema.code_column, [r.code for r in batch])
                    updated = sum(1 for r in batch if r.code in existing)
                    inserted = len(batch) - updated
                store.upsert(schema.table, rows, on_conflict=schema.code_column)
            except StoreUnavailableError as e:
                logger.error("batch %d: %s; aborting run", number, e)
                if error_log is not None:
                    error_log.append(
                        ErrorRecord.create(source, schema.key, start, stop - 1, "STORE_UNAVAILABLE", str(e))
                    )
                raise
            except StoreError as e:
                logger.error("batch %d failed (records %d-%d): %s", number, start, stop - 1, e)
                outcome = BatchOutcome(
                    batch_start=start,
                    batch_end=stop - 1,
                    success_count=0,
                    error=str(e),
                    elapsed_seconds=time.perf_counter() - batch_start,
                )
                if error_log is not None:
                    error_log.append(
                        ErrorRecord.create(source, schema.key, start, stop - 1, "BATCH_UPSERT_ERROR", str(e))
                    )
            else:
                outcome = BatchOutcome(
                    batch_start=start,
                    batch_end=stop - 1,
                    success_count=len(batch),
                    inserted=inserted,
                    updated=updated,
                    elapsed_seconds=time.perf_counter() - batch_start,
                )
            outcomes.append(outcome)
            progress.advance(success=not outcome.failed, written=outcome.success_count)

            if delay_seconds > 0 and number < len(bounds):
                sleep(delay_seconds)

    return UpsertResult(outcomes=tuple(outcomes))
