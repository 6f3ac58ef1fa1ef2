from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""SpecimenRecord: the normalized output unit of the import (a rock or a mineral)."""

__all__ = [
    "SpecimenRecord",
]


@dataclass(frozen=True)
class SpecimenRecord:
    """Normalized rock/mineral record.

    ``code`` is the upsert key. ``attributes`` holds every optional column of the
    entity schema (empty string when absent) so all records of one entity share
    the same column set.
    """
    code: str
    name: str
    category: str
    type: str
    attributes: dict[str, str] = field(default_factory=dict)
    sheet: str = ""
    row_number: int = 0
    code_synthesized: bool = False

    def as_row(self, code_column: str, name_column: str) -> dict[str, Any]:
        row: dict[str, Any] = {
            code_column: self.code,
            name_column: self.name,
            "category": self.category,
            "type": self.type,
        }
        row.update(self.attributes)
        return row

