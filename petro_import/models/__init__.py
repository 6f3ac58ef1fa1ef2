"""Domain models for the rock/mineral spreadsheet importer."""

from .error_record import ErrorRecord
from .import_result import BatchOutcome, ImportReport, SheetImportCounts, UpsertResult
from .row_data import RowData
from .specimen import SpecimenRecord

__all__ = [
    # Input
    "RowData",
    # Output
    "SpecimenRecord",
    "SheetImportCounts",
    "BatchOutcome",
    "UpsertResult",
    "ImportReport",
    "ErrorRecord",
]
