from __future__ import annotations

import logging
from dataclasses import dataclass

from ..db.store import RowStore
from .entities import EntitySchema

"""Duplicate-name report over the stored catalog.

Codes are unique in the store, but the same specimen can end up stored twice
under two codes (e.g. once with a synthesized code, once with an explicit one).
Names are compared case-folded and trimmed.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DuplicateGroup:
    key: str
    members: tuple[dict[str, str], ...]


def name_key(name: object) -> str:
    return str(name or "").strip().casefold()


def find_duplicate_names(store: RowStore, schema: EntitySchema) -> list[DuplicateGroup]:
    rows = store.select(schema.table, [schema.code_column, schema.name_column, "category"])
    groups: dict[str, list[dict[str, str]]] = {}
    for row in rows:
        key = name_key(row.get(schema.name_column))
        if not key:
            continue
        groups.setdefault(key, []).append(
            {
                "code": str(row.get(schema.code_column) or ""),
                "name": str(row.get(schema.name_column) or ""),
                "category": str(row.get("category") or ""),
            }
        )
    found = [
        DuplicateGroup(key=key, members=tuple(sorted(members, key=lambda m: m["code"])))
        for key, members in sorted(groups.items())
        if len(members) > 1
    ]
    logger.info("%d duplicate %s name groups in %d stored rows", len(found), schema.label, len(rows))
    return found
