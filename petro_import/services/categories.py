from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .columns import cell_text

"""Category inference for specimen rows.

Sheet names are the primary signal; for rocks a content check on ore-specific
columns catches ore samples kept on sheets without "ore" in their name.
First matching rule wins; the raw sheet name is the fallback category.
"""

IGNEOUS = "Igneous"
SEDIMENTARY = "Sedimentary"
METAMORPHIC = "Metamorphic"
ORE_SAMPLES = "Ore Samples"

ORE_INDICATOR_HEADERS = (
    "Type of Commodity",
    "Ore Group",
    "Type of Deposit",
    "Mining Company",
    "Mining Company/Donated by",
)


@dataclass(frozen=True)
class CategoryRules:
    """Ordered classification rules.

    sheet_keywords: (category, keywords) pairs matched case-insensitively
        against the sheet name, in order.
    content_category: category assigned when the sheet name or resolved name
        contains one of content_keywords, or a content_headers cell is non-blank.
    """
    sheet_keywords: tuple[tuple[str, tuple[str, ...]], ...] = ()
    content_category: str | None = None
    content_keywords: tuple[str, ...] = ()
    content_headers: tuple[str, ...] = ()


ROCK_CATEGORY_RULES = CategoryRules(
    sheet_keywords=(
        (IGNEOUS, ("igneous", "volcanic", "plutonic")),
        (SEDIMENTARY, ("sedimentary", "sediment")),
        (METAMORPHIC, ("metamorphic", "metam")),
    ),
    content_category=ORE_SAMPLES,
    content_keywords=("ore",),
    content_headers=ORE_INDICATOR_HEADERS,
)

# Mineral workbooks keep one mineral class per sheet (BORATES, CARBONATES, ...).
SHEET_NAME_RULES = CategoryRules()


def _has_content(row: Mapping[str, Any], headers: tuple[str, ...]) -> bool:
    return any(cell_text(row.get(h)) for h in headers)


def classify(
    sheet_name: str,
    row: Mapping[str, Any],
    resolved_name: str,
    rules: CategoryRules = ROCK_CATEGORY_RULES,
) -> str:
    sheet = sheet_name.lower()
    for category, keywords in rules.sheet_keywords:
        if any(k in sheet for k in keywords):
            return category

    if rules.content_category is not None:
        name = resolved_name.lower()
        if any(k in sheet or k in name for k in rules.content_keywords):
            return rules.content_category
        if _has_content(row, rules.content_headers):
            return rules.content_category

    return sheet_name
