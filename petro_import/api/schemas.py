from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from petro_import.models.import_result import ImportReport

"""Pydantic schemas for the import endpoints.

Fields are snake_case in Python and camelCase on the wire; optional fields are
left out of the body when unset (routes use response_model_exclude_none).
"""


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SheetCounts(BaseModel):
    """Per-sheet tally. processed + skipped == total."""

    total: int
    processed: int
    skipped: int


class BatchErrorDetail(CamelModel):
    """A failed batch; batch_end is inclusive."""

    batch_start: int
    batch_end: int
    error: Optional[str] = None


class ImportReportResponse(CamelModel):
    """Body of a finished import run (201, or 400 when nothing was written).

    Attributes:
        counts: per-sheet tallies in workbook order (empty for direct imports)
        inserted_count / updated_count: only when existence checks ran
        duplicate_count: records collapsed onto a later row with the same code
    """

    success: bool
    message: str
    counts: dict[str, SheetCounts] = Field(default_factory=dict)
    total_found: int
    success_count: int
    error_count: int
    error_details: Optional[list[BatchErrorDetail]] = None
    inserted_count: Optional[int] = None
    updated_count: Optional[int] = None
    duplicate_count: Optional[int] = None

    @classmethod
    def from_report(cls, report: ImportReport) -> ImportReportResponse:
        return cls(
            success=report.success,
            message=report.message,
            counts={
                name: SheetCounts(total=c.total, processed=c.processed, skipped=c.skipped)
                for name, c in report.counts.items()
            },
            total_found=report.total_found,
            success_count=report.success_count,
            error_count=report.error_count,
            error_details=[
                BatchErrorDetail(batch_start=o.batch_start, batch_end=o.batch_end, error=o.error)
                for o in report.error_details
            ]
            or None,
            inserted_count=report.inserted_count,
            updated_count=report.updated_count,
            duplicate_count=report.duplicate_count or None,
        )


class ErrorResponse(BaseModel):
    """Body of a rejected request."""

    success: bool = False
    message: str
    error: Optional[str] = None
