from __future__ import annotations

import io
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from petro_import.models.row_data import RowData

"""Workbook reader.

The first row of each sheet is the header row, every following non-blank row is a
data row (same layout as a spreadsheet exported by the catalog admins). Header
text is whitespace-trimmed; cell values are kept as read, with empty cells as None.
Sheets whose name starts with "_" are reserved for metadata and never returned.
"""

RESERVED_SHEET_PREFIX = "_"
EXCEL_SUFFIXES = (".xlsx", ".xls")


class WorkbookError(Exception):
    """Raised when a workbook cannot be opened or parsed."""


@dataclass
class SheetData:
    sheet_name: str
    columns: list[str]
    rows: list[RowData]


def is_reserved_sheet(name: str) -> bool:
    return name.startswith(RESERVED_SHEET_PREFIX)


def read_workbook(
    source: Path | bytes, skip_sheets: Iterable[str] | None = None
) -> dict[str, pd.DataFrame]:
    """Read a workbook returning raw DataFrames keyed by sheet name, in workbook order.

    Parameters
    ----------
    source: path to a .xlsx/.xls file, or the uploaded file bytes
    skip_sheets: extra sheet names to leave out (reserved "_" sheets are always skipped)
    """
    skip = set(skip_sheets or ())
    handle: Any = io.BytesIO(source) if isinstance(source, bytes) else source
    # the engines raise their own error types on damaged files (zipfile, xml, xlrd)
    try:
        xls = pd.ExcelFile(handle)
    except FileNotFoundError:
        raise
    except Exception as e:
        raise WorkbookError(f"unable to read workbook: {e}") from e

    dfs: dict[str, pd.DataFrame] = {}
    with xls:
        for name in xls.sheet_names:
            sheet_name = str(name)
            if is_reserved_sheet(sheet_name) or sheet_name in skip:
                continue
            try:
                # dtype=object keeps integer cells as int (no float upcast from blank cells)
                dfs[sheet_name] = xls.parse(name, header=None, dtype=object)
            except Exception as e:
                raise WorkbookError(f"unable to read sheet {sheet_name}: {e}") from e
    return dfs


def _header_text(value: Any) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def normalize_sheet(df: pd.DataFrame, sheet_name: str) -> SheetData:
    """Turn a raw DataFrame into header -> value rows.

    Steps:
    1. First row (index=0) becomes the header; blank header cells drop their column
    2. Remaining rows become data rows; rows with no value at all are skipped
    3. Duplicate header text keeps the first column
    """
    if df.shape[0] == 0:
        return SheetData(sheet_name=sheet_name, columns=[], rows=[])

    header = [_header_text(c) for c in df.iloc[0].tolist()]
    positions: dict[str, int] = {}
    for pos, col in enumerate(header):
        if col and col not in positions:
            positions[col] = pos
    columns = list(positions)

    rows: list[RowData] = []
    for raw in df.iloc[1:].itertuples(index=False, name=None):
        values: dict[str, Any] = {}
        for col, pos in positions.items():
            val = raw[pos] if pos < len(raw) else None
            if val is None or (not isinstance(val, str) and pd.isna(val)):
                val = None
            elif isinstance(val, str) and val.strip() == "":
                val = None
            values[col] = val
        if all(v is None for v in values.values()):
            continue
        rows.append(RowData(row_number=len(rows) + 1, values=values))

    return SheetData(sheet_name=sheet_name, columns=columns, rows=rows)
