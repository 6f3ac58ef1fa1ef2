from __future__ import annotations

import statistics
from dataclasses import dataclass, field

"""Result models for one import run.

SheetImportCounts and BatchOutcome are accumulated while records are built and
written; ImportReport is the aggregate handed to the caller (rendered as the HTTP
body or the CLI SUMMARY line). Nothing here outlives a single import call.
"""


@dataclass(frozen=True)
class SheetImportCounts:
    """Per-sheet tally. Invariant: processed + skipped == total."""
    total: int = 0
    processed: int = 0
    skipped: int = 0

    def add_processed(self) -> SheetImportCounts:
        return SheetImportCounts(self.total + 1, self.processed + 1, self.skipped)

    def add_skipped(self) -> SheetImportCounts:
        return SheetImportCounts(self.total + 1, self.processed, self.skipped + 1)


@dataclass(frozen=True)
class BatchOutcome:
    """Outcome of one upsert call. batch_end is inclusive."""
    batch_start: int
    batch_end: int
    success_count: int
    error: str | None = None
    inserted: int | None = None
    updated: int | None = None
    elapsed_seconds: float = 0.0

    @property
    def size(self) -> int:
        return self.batch_end - self.batch_start + 1

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class UpsertResult:
    """Aggregate of all batch outcomes of one executor run."""
    outcomes: tuple[BatchOutcome, ...] = ()
    duplicate_count: int = 0

    @property
    def success_count(self) -> int:
        return sum(o.success_count for o in self.outcomes)

    @property
    def error_count(self) -> int:
        return sum(o.size for o in self.outcomes if o.failed)

    @property
    def failed_batches(self) -> list[BatchOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def inserted_count(self) -> int | None:
        if not self.outcomes or any(o.inserted is None for o in self.outcomes if not o.failed):
            return None
        return sum(o.inserted or 0 for o in self.outcomes)

    @property
    def updated_count(self) -> int | None:
        if not self.outcomes or any(o.updated is None for o in self.outcomes if not o.failed):
            return None
        return sum(o.updated or 0 for o in self.outcomes)


@dataclass(frozen=True)
class ImportReport:
    """Aggregate of one import run. error_details holds the failed batches."""
    entity: str
    counts: dict[str, SheetImportCounts]
    total_found: int
    success_count: int
    error_count: int
    error_details: list[BatchOutcome] = field(default_factory=list)
    inserted_count: int | None = None
    updated_count: int | None = None
    duplicate_count: int = 0

    @property
    def success(self) -> bool:
        return self.success_count > 0

    @property
    def message(self) -> str:
        return (
            f"Processed {self.total_found} {self.entity}: "
            f"{self.success_count} successful, {self.error_count} failed"
        )


class BatchStatsAccumulator:
    """Collects batch timings and reports (total, avg, p95)."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
