from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..config.loader import ImportConfig
from ..db.store import RowStore
from ..excel.reader import SheetData, normalize_sheet, read_workbook
from ..logging.error_log import ErrorLogBuffer
from ..models.import_result import BatchStatsAccumulator, ImportReport, SheetImportCounts, UpsertResult
from ..models.specimen import SpecimenRecord
from .builder import CODE_STRATEGIES, collect_records, dedupe_codes, record_from_mapping
from .entities import EntitySchema
from .executor import execute
from .summary import RunTiming, summarize

"""Import pipeline orchestration.

One parameterized pipeline serves rocks and minerals, from an uploaded workbook,
from the configured server-side workbook, or from pre-parsed JSON rows:

    workbook -> sheets -> records (+ per-sheet counts) -> unique codes
             -> batch upsert -> ImportReport
"""

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Base exception for pipeline-level failures."""


class NoRecordsError(ProcessingError):
    """Nothing importable was found in the input."""


@dataclass(frozen=True)
class ImportSettings:
    batch_size: int
    delay_seconds: float = 0.0
    code_strategy: str = "index"
    check_existing: bool = False
    skip_sheets: frozenset[str] = field(default_factory=frozenset)
    error_log_dir: str | None = None

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ProcessingError(f"batch size must be >= 1, got {self.batch_size}")
        if self.code_strategy not in CODE_STRATEGIES:
            raise ProcessingError(f"unknown code strategy: {self.code_strategy}")

    @classmethod
    def from_config(
        cls, config: ImportConfig, entity: str, batch_size: int | None = None
    ) -> ImportSettings:
        entity_cfg = config.entity(entity)
        return cls(
            batch_size=batch_size or entity_cfg.batch_size,
            delay_seconds=entity_cfg.batch_delay_seconds,
            code_strategy=config.code_strategy,
            check_existing=config.check_existing,
            skip_sheets=entity_cfg.skip_sheets,
            error_log_dir=config.error_log_dir,
        )


@dataclass(frozen=True)
class ImportRun:
    report: ImportReport
    timing: RunTiming
    error_log_path: Path | None = None


def load_sheets(source: Path | bytes, skip_sheets: Iterable[str] | None = None) -> list[SheetData]:
    """Read and normalize every importable sheet, in workbook order."""
    raw = read_workbook(source, skip_sheets=skip_sheets)
    logger.info("workbook sheets: %s", list(raw))
    return [normalize_sheet(df, name) for name, df in raw.items()]


def run_import(
    schema: EntitySchema,
    source: Path | bytes,
    store: RowStore,
    settings: ImportSettings,
    source_name: str = "",
) -> ImportRun:
    """Run the full pipeline over a workbook (path or uploaded bytes).

    Raises:
        WorkbookError: the workbook cannot be parsed
        NoRecordsError: no sheet yielded a record
        StoreUnavailableError: the store is unreachable
    """
    if not source_name:
        source_name = source.name if isinstance(source, Path) else "<upload>"
    logger.info("importing %s from %s", schema.label, source_name)

    sheets = load_sheets(source, settings.skip_sheets)
    collection = collect_records(schema, sheets, settings.code_strategy)
    logger.info("total %s found: %d", schema.label, collection.total_found)
    if not collection.records:
        raise NoRecordsError(f"No valid {schema.label} found in the Excel file")

    return _write(schema, collection.records, collection.counts, store, settings, source_name)


def run_direct_import(
    schema: EntitySchema,
    rows: Sequence[Mapping[str, Any]],
    store: RowStore,
    settings: ImportSettings,
) -> ImportRun:
    """Upsert pre-parsed rows keyed by column names; only the batch stage runs."""
    records: list[SpecimenRecord] = []
    skipped = 0
    for index, row in enumerate(rows, start=1):
        record = record_from_mapping(schema, row, index, settings.code_strategy)
        if record is None:
            skipped += 1
            continue
        records.append(record)
    if skipped:
        logger.warning("direct import: %d rows without %s ignored", skipped, schema.name_column)
    if not records:
        raise NoRecordsError(f"No valid {schema.label} in request body")
    return _write(schema, records, {}, store, settings, "<direct>")


def _write(
    schema: EntitySchema,
    records: Sequence[SpecimenRecord],
    counts: Mapping[str, SheetImportCounts],
    store: RowStore,
    settings: ImportSettings,
    source_name: str,
) -> ImportRun:
    start_time = datetime.now(UTC)
    unique, duplicates = dedupe_codes(records)
    if duplicates:
        logger.warning("%d %s share a code with a later row and were replaced", duplicates, schema.label)

    error_log = ErrorLogBuffer(settings.error_log_dir)
    try:
        result: UpsertResult = execute(
            store,
            schema,
            unique,
            settings.batch_size,
            delay_seconds=settings.delay_seconds,
            check_existing=settings.check_existing,
            error_log=error_log,
            source=source_name,
        )
    finally:
        try:
            log_path = error_log.flush()
        except OSError as e:
            logger.warning("error log not written: %s", e)
            log_path = None
        if log_path is not None:
            logger.info("error log written: %s", log_path)

    result = replace(result, duplicate_count=duplicates)
    report = summarize(schema.label, counts, result, total_found=len(records))

    stats = BatchStatsAccumulator()
    for outcome in result.outcomes:
        stats.add_batch_time(outcome.elapsed_seconds)
    total_batches, avg_batch, p95_batch = stats.get_stats()
    elapsed = (datetime.now(UTC) - start_time).total_seconds()
    logger.info(report.message)
    return ImportRun(
        report=report,
        timing=RunTiming(
            elapsed_seconds=elapsed,
            total_batches=total_batches,
            avg_batch_seconds=avg_batch,
            p95_batch_seconds=p95_batch,
        ),
        error_log_path=log_path,
    )
