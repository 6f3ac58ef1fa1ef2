from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from ..models.import_result import ImportReport, SheetImportCounts, UpsertResult

"""Import report aggregation and the CLI SUMMARY line."""


def summarize(
    entity: str,
    sheet_counts: Mapping[str, SheetImportCounts],
    upsert_result: UpsertResult,
    total_found: int | None = None,
) -> ImportReport:
    """Merge per-sheet counts with batch outcomes. Pure; no side effects.

    total_found defaults to the processed rows of all sheets.
    """
    if total_found is None:
        total_found = sum(c.processed for c in sheet_counts.values())
    return ImportReport(
        entity=entity,
        counts=dict(sheet_counts),
        total_found=total_found,
        success_count=upsert_result.success_count,
        error_count=upsert_result.error_count,
        error_details=upsert_result.failed_batches,
        inserted_count=upsert_result.inserted_count,
        updated_count=upsert_result.updated_count,
        duplicate_count=upsert_result.duplicate_count,
    )


@dataclass(frozen=True)
class RunTiming:
    elapsed_seconds: float
    total_batches: int
    avg_batch_seconds: float
    p95_batch_seconds: float = 0.0


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation for very small values
        return f"{value:.6f}".rstrip('0').rstrip('.')
    return f"{value:.3f}".rstrip('0').rstrip('.')


def render_summary_line(report: ImportReport, timing: RunTiming) -> str:
    """Render the SUMMARY line.

    Format:
    SUMMARY entity={entity} sheets={n} found={found} success={ok} failed={err}
    skipped_rows={skipped} batches={b} avg_batch_sec={avg} p95_batch_sec={p95}
    elapsed_sec={elapsed}
    """
    skipped = sum(c.skipped for c in report.counts.values())
    return (
        f"SUMMARY entity={report.entity} "
        f"sheets={len(report.counts)} "
        f"found={report.total_found} "
        f"success={report.success_count} "
        f"failed={report.error_count} "
        f"skipped_rows={skipped} "
        f"batches={timing.total_batches} "
        f"avg_batch_sec={_format_number(timing.avg_batch_seconds)} "
        f"p95_batch_sec={_format_number(timing.p95_batch_seconds)} "
        f"elapsed_sec={_format_number(timing.elapsed_seconds)}"
    )
