from __future__ import annotations

from dataclasses import dataclass, field

from .categories import (
    IGNEOUS,
    METAMORPHIC,
    ORE_SAMPLES,
    ROCK_CATEGORY_RULES,
    SEDIMENTARY,
    SHEET_NAME_RULES,
    CategoryRules,
)

"""Entity schemas: target table, key columns and header alias tables.

Each field maps a database column to the ordered list of spreadsheet headers it
may appear under. Headers are matched in order; see columns.resolve.
"""


@dataclass(frozen=True)
class FieldSpec:
    column: str
    headers: tuple[str, ...]
    categories: frozenset[str] | None = None  # None: resolved for every category
    default: str = ""


@dataclass(frozen=True)
class EntitySchema:
    key: str
    label: str  # plural noun used in messages
    table: str
    code_column: str
    name_column: str
    code_headers: tuple[str, ...]
    name_headers: tuple[str, ...]
    fields: tuple[FieldSpec, ...]
    category_rules: CategoryRules
    type_headers: tuple[str, ...] = ()
    fixed_type: str | None = None
    type_by_category: dict[str, str] = field(default_factory=dict)
    code_prefix_length: int = 1
    code_prefix_overrides: dict[str, str] = field(default_factory=dict)
    sheet_fallback_columns: tuple[str, ...] = ()
    # Category whose rows are kept even without a name (name synthesized from commodity)
    nameless_category: str | None = None
    derive_coordinates: bool = False

    @property
    def columns(self) -> tuple[str, ...]:
        base = (self.code_column, self.name_column, "category", "type")
        extra = tuple(f.column for f in self.fields)
        if self.derive_coordinates:
            extra += ("coordinates",)
        return base + extra

    def code_prefix(self, category: str) -> str:
        if category in self.code_prefix_overrides:
            return self.code_prefix_overrides[category]
        return category.strip()[: self.code_prefix_length].upper()


def _only(*categories: str) -> frozenset[str]:
    return frozenset(categories)


_IGNEOUS = _only(IGNEOUS)
_SEDIMENTARY = _only(SEDIMENTARY)
_METAMORPHIC = _only(METAMORPHIC)
_ORE = _only(ORE_SAMPLES)

ROCK_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("chemical_formula", ("Chemical Formula", "Chemical")),
    FieldSpec("hardness", ("Hardness",)),
    FieldSpec("depositional_environment", ("Depositional Environment", "Depositional Env.")),
    FieldSpec("grain_size", ("Grain Size",)),
    FieldSpec("color", ("Color", "Colour", "Color ")),
    FieldSpec("texture", ("Texture",)),
    FieldSpec("latitude", ("Latitude", "LAT")),
    FieldSpec("longitude", ("Longitude", "LONG")),
    FieldSpec("locality", ("Locality", "Location")),
    FieldSpec("mineral_composition", ("Mineral Composition",)),
    FieldSpec("description", ("Description", "Overall Description")),
    FieldSpec("formation", ("Formation",)),
    FieldSpec("geological_age", ("Geological Age", "Age")),
    FieldSpec("status", ("Status",), default="active"),
    FieldSpec("image_url", ("Image URL",)),
    FieldSpec("associated_minerals", ("Associated Minerals", "Associated Minerals ")),
    FieldSpec("luster", ("Luster", "Luster ")),
    FieldSpec("reaction_to_hcl", ("Reaction to HCl", "Reaction to HCL")),
    FieldSpec("magnetism", ("Magnetism", "Magnetism ")),
    FieldSpec("streak", ("Streak", "Streak ")),
    # Igneous
    FieldSpec("silica_content", ("Silica Content",), _IGNEOUS),
    FieldSpec("cooling_rate", ("Cooling Rate",), _IGNEOUS),
    FieldSpec("mineral_content", ("Mineral Content",), _IGNEOUS),
    FieldSpec("origin", ("Origin",), _IGNEOUS),
    # Sedimentary
    FieldSpec("bedding", ("Bedding",), _SEDIMENTARY),
    FieldSpec("sorting", ("Sorting", "Sorting "), _SEDIMENTARY),
    FieldSpec("roundness", ("Roundness",), _SEDIMENTARY),
    FieldSpec("fossil_content", ("Fossil Content", "Fossils", "Fossils "), _SEDIMENTARY),
    FieldSpec("sediment_source", ("Sediment Source",), _SEDIMENTARY),
    # Metamorphic
    FieldSpec("metamorphism_type", ("Metamorphism Type", "Metamorphism", "Metamorpism"), _METAMORPHIC),
    FieldSpec("metamorphic_grade", ("Metamorphic Grade",), _METAMORPHIC),
    FieldSpec("parent_rock", ("Parent Rock",), _METAMORPHIC),
    FieldSpec("foliation", ("Foliation",), _METAMORPHIC),
    FieldSpec("foliation_type", ("Foliation Type",), _METAMORPHIC),
    FieldSpec("protolith", ("Protolith", "Parent Rock"), _METAMORPHIC),
    # Ore samples
    FieldSpec("commodity_type", ("Type of Commodity", "Commodity Type"), _ORE),
    FieldSpec("ore_group", ("Ore Group", "Type of Deposit"), _ORE),
    FieldSpec(
        "mining_company",
        ("Mining Company", "Mining Company/Donated by", "Mining Company/Donated by:"),
        _ORE,
    ),
)

ROCKS = EntitySchema(
    key="rocks",
    label="rocks",
    table="rocks",
    code_column="rock_code",
    name_column="name",
    code_headers=("Rock Code",),
    name_headers=("Rock Name", "Name", "Sample Name", "Rock", "Sample"),
    type_headers=("Type", "Rock Type", "Type of Commodity", "Commodity Type", "Ore Group"),
    fields=ROCK_FIELDS,
    category_rules=ROCK_CATEGORY_RULES,
    type_by_category={
        IGNEOUS: "Igneous",
        SEDIMENTARY: "Sedimentary",
        METAMORPHIC: "Metamorphic",
        ORE_SAMPLES: "Ore",
    },
    code_prefix_length=1,
    code_prefix_overrides={ORE_SAMPLES: "O"},
    nameless_category=ORE_SAMPLES,
    derive_coordinates=True,
)

MINERAL_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("chemical_formula", ("Chemical Formula", "Chemical Formula ")),
    FieldSpec("mineral_group", ("Mineral Group", "Group")),
    FieldSpec("color", ("Color", "Colour")),
    FieldSpec("streak", ("Streak",)),
    FieldSpec("luster", ("Luster", "Lustre")),
    FieldSpec("hardness", ("Hardness",)),
    FieldSpec("cleavage", ("Cleavage",)),
    FieldSpec("fracture", ("Fracture",)),
    FieldSpec("habit", ("Habit",)),
    FieldSpec("crystal_system", ("Crystal System", " Crystal System")),
    FieldSpec("specific_gravity", ("Specific Gravity",)),
    FieldSpec("transparency", ("Transparency",)),
    FieldSpec("occurrence", ("Occurrence",)),
    FieldSpec("uses", ("Uses",)),
    FieldSpec("image_url", ("Image URL",)),
)

MINERALS = EntitySchema(
    key="minerals",
    label="minerals",
    table="minerals",
    code_column="mineral_code",
    name_column="mineral_name",
    code_headers=("Mineral Code",),
    name_headers=("Mineral Name", "Mineral", "Name", "Sample"),
    fields=MINERAL_FIELDS,
    category_rules=SHEET_NAME_RULES,
    fixed_type="mineral",
    code_prefix_length=3,
    sheet_fallback_columns=("mineral_group",),
)

SCHEMAS: dict[str, EntitySchema] = {s.key: s for s in (ROCKS, MINERALS)}


def get_schema(key: str) -> EntitySchema:
    try:
        return SCHEMAS[key]
    except KeyError:
        raise ValueError(f"unknown entity: {key!r} (expected one of {sorted(SCHEMAS)})") from None
