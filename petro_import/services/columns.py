from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any

"""Column resolution: pick a field value out of a raw row by header aliases."""

__all__ = [
    "cell_text",
    "resolve",
]


def cell_text(value: Any) -> str:
    """Render a cell value as trimmed text ("" for empty cells).

    Integral floats lose their ".0" so numeric codes and years read as typed.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def resolve(row: Mapping[str, Any], candidate_headers: Sequence[str]) -> str:
    """Return the first non-blank value among ``candidate_headers``, in order.

    Matching is case-sensitive. A candidate written with stray spaces
    (e.g. " Crystal System") also matches its trimmed form, since workbook
    headers are trimmed when read.
    """
    for header in candidate_headers:
        for key in dict.fromkeys((header, header.strip())):
            text = cell_text(row.get(key))
            if text:
                return text
    return ""
