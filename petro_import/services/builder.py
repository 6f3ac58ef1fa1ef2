from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from ..excel.reader import SheetData
from ..models.import_result import SheetImportCounts
from ..models.specimen import SpecimenRecord
from .categories import classify
from .columns import cell_text, resolve
from .entities import EntitySchema

"""Record building: raw sheet rows -> SpecimenRecord list + per-sheet counts.

The whole pass is a fold over sheets: build_sheet returns the sheet's records and
its counts, collect_records concatenates them. Nothing is shared between sheets.
"""

logger = logging.getLogger(__name__)

CODE_STRATEGIES = ("index", "content")
UNKNOWN_TYPE = "Unknown"


@dataclass(frozen=True)
class RecordCollection:
    records: tuple[SpecimenRecord, ...]
    counts: dict[str, SheetImportCounts]

    @property
    def total_found(self) -> int:
        return len(self.records)


def synthesize_code(
    schema: EntitySchema,
    category: str,
    index: int,
    strategy: str = "index",
    *,
    sheet_name: str = "",
    name: str = "",
    locality: str = "",
) -> str:
    """Build a code for a row without one.

    index:   ``{prefix}-{index:04d}``, index is the 1-based row position in its sheet
    content: ``{prefix}-{sha1(sheet|name|locality)[:8]}``, stable under row reordering
    """
    prefix = schema.code_prefix(category)
    if strategy == "content":
        digest = hashlib.sha1(f"{sheet_name}|{name}|{locality}".encode("utf-8")).hexdigest()
        return f"{prefix}-{digest[:8].upper()}"
    if strategy != "index":
        raise ValueError(f"unknown code strategy: {strategy!r}")
    return f"{prefix}-{index:04d}"


def _compose_coordinates(row: Mapping[str, Any], latitude: str, longitude: str) -> str:
    explicit = resolve(row, ("Coordinates",))
    if explicit:
        return explicit
    if latitude and longitude:
        return f"{latitude}, {longitude}"
    return ""


def build_record(
    schema: EntitySchema,
    sheet_name: str,
    row: Mapping[str, Any],
    index: int,
    code_strategy: str = "index",
) -> SpecimenRecord | None:
    """Build one record, or None when the row has no usable name."""
    name = resolve(row, schema.name_headers)
    category = classify(sheet_name, row, name, schema.category_rules)

    attributes: dict[str, str] = {}
    for spec in schema.fields:
        if spec.categories is not None and category not in spec.categories:
            attributes[spec.column] = ""
            continue
        attributes[spec.column] = resolve(row, spec.headers) or spec.default
    for column in schema.sheet_fallback_columns:
        if not attributes.get(column):
            attributes[column] = sheet_name
    if schema.derive_coordinates:
        attributes["coordinates"] = _compose_coordinates(
            row, attributes.get("latitude", ""), attributes.get("longitude", "")
        )

    if not name:
        if schema.nameless_category is None or category != schema.nameless_category:
            return None
        commodity = attributes.get("commodity_type", "")
        name = f"{commodity} Ore Sample" if commodity else f"Ore Sample {index}"

    if schema.fixed_type is not None:
        specimen_type = schema.fixed_type
    else:
        specimen_type = resolve(row, schema.type_headers) or schema.type_by_category.get(
            category, UNKNOWN_TYPE
        )

    code = resolve(row, schema.code_headers)
    synthesized = not code
    if synthesized:
        code = synthesize_code(
            schema,
            category,
            index,
            code_strategy,
            sheet_name=sheet_name,
            name=name,
            locality=attributes.get("locality", ""),
        )

    return SpecimenRecord(
        code=code,
        name=name,
        category=category,
        type=specimen_type,
        attributes=attributes,
        sheet=sheet_name,
        row_number=index,
        code_synthesized=synthesized,
    )


def build_sheet(
    schema: EntitySchema, sheet: SheetData, code_strategy: str = "index"
) -> tuple[list[SpecimenRecord], SheetImportCounts]:
    records: list[SpecimenRecord] = []
    counts = SheetImportCounts()
    for row in sheet.rows:
        record = build_record(schema, sheet.sheet_name, row.values, row.row_number, code_strategy)
        if record is None:
            logger.debug("skip row %d in sheet %s: no name found", row.row_number, sheet.sheet_name)
            counts = counts.add_skipped()
            continue
        records.append(record)
        counts = counts.add_processed()
    return records, counts


def collect_records(
    schema: EntitySchema, sheets: Iterable[SheetData], code_strategy: str = "index"
) -> RecordCollection:
    records: list[SpecimenRecord] = []
    counts: dict[str, SheetImportCounts] = {}
    for sheet in sheets:
        if sheet.rows:
            logger.debug("sheet %s headers: %s", sheet.sheet_name, sheet.columns)
        sheet_records, sheet_counts = build_sheet(schema, sheet, code_strategy)
        logger.info(
            "sheet %s: total=%d processed=%d skipped=%d",
            sheet.sheet_name,
            sheet_counts.total,
            sheet_counts.processed,
            sheet_counts.skipped,
        )
        records.extend(sheet_records)
        counts[sheet.sheet_name] = sheet_counts
    return RecordCollection(records=tuple(records), counts=counts)


def _free_code(code: str, taken: Mapping[str, int]) -> str:
    n = 2
    while f"{code}-{n}" in taken:
        n += 1
    return f"{code}-{n}"


def dedupe_codes(records: Iterable[SpecimenRecord]) -> tuple[list[SpecimenRecord], int]:
    """Make codes unique within one run.

    A synthesized code always gives way with a ``-{n}`` suffix, whether the later
    record is synthesized or carries the same code explicitly. Records sharing an
    explicit code collapse to the last one (what an upsert would leave behind);
    the number of collapsed records is returned.
    """
    unique: list[SpecimenRecord] = []
    slots: dict[str, int] = {}
    duplicates = 0
    for record in records:
        code = record.code
        held = slots.get(code)
        if held is not None and record.code_synthesized:
            record = replace(record, code=_free_code(code, slots))
        elif held is not None and unique[held].code_synthesized:
            moved = replace(unique[held], code=_free_code(code, slots))
            logger.debug(
                "synthesized code %s moved to %s for explicit code in sheet %s", code, moved.code, record.sheet
            )
            unique[held] = moved
            slots[moved.code] = held
        elif held is not None:
            logger.warning(
                "duplicate code %s: sheet %s row %s replaces sheet %s row %s",
                code, record.sheet, record.row_number, unique[held].sheet, unique[held].row_number,
            )
            duplicates += 1
            unique[held] = record
            continue
        slots[record.code] = len(unique)
        unique.append(record)
    return unique, duplicates


def record_from_mapping(
    schema: EntitySchema, data: Mapping[str, Any], index: int, code_strategy: str = "index"
) -> SpecimenRecord | None:
    """Build a record from a pre-parsed row keyed by column names (direct import).

    Unknown keys are ignored; missing optional columns become "".
    """
    name = cell_text(data.get(schema.name_column))
    if not name:
        return None
    category = cell_text(data.get("category")) or UNKNOWN_TYPE
    specimen_type = (
        cell_text(data.get("type")) or schema.fixed_type or schema.type_by_category.get(category, UNKNOWN_TYPE)
    )
    attributes = {spec.column: cell_text(data.get(spec.column)) or spec.default for spec in schema.fields}
    if schema.derive_coordinates:
        attributes["coordinates"] = cell_text(data.get("coordinates"))
    code = cell_text(data.get(schema.code_column))
    synthesized = not code
    if synthesized:
        code = synthesize_code(
            schema, category, index, code_strategy, name=name, locality=attributes.get("locality", "")
        )
    return SpecimenRecord(
        code=code,
        name=name,
        category=category,
        type=specimen_type,
        attributes=attributes,
        row_number=index,
        code_synthesized=synthesized,
    )
