from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""RowData model: one spreadsheet row as read from a sheet.

Header text is kept as authored (whitespace-trimmed); no schema is enforced
at this stage. The same logical field may appear under many header spellings.
"""

__all__ = [
    "RowData",
]


@dataclass(frozen=True)
class RowData:
    """A single data row of a sheet.

    row_number is the 1-based position of the row among the sheet's data rows
    (blank rows excluded), which is the index used for code synthesis.
    """
    row_number: int
    values: dict[str, Any]  # header text -> cell value
