"""Nutrient schema shared by scaling, meal aggregation and analytics."""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

MACRO_PRECISION = 1
MICRO_PRECISION = 2


@dataclass(frozen=True)
class NutrientField:
    """A tracked nutrient with its unit and rounding precision."""

    name: str
    unit: str
    precision: int
    group: str


def _fields(group: str, unit: str, precision: int, *names: str) -> list[NutrientField]:
    return [NutrientField(name, unit, precision, group) for name in names]


_FIELDS: list[NutrientField] = [
    NutrientField("calories", "kcal", MACRO_PRECISION, "macro"),
    *_fields(
        "macro", "g", MACRO_PRECISION, "proteins", "carbs", "fats", "fiber", "sugars"
    ),
    NutrientField("salt", "g", MICRO_PRECISION, "electrolyte"),
    NutrientField("sodium", "mg", MICRO_PRECISION, "electrolyte"),
    *_fields(
        "vitamin",
        "mg",
        MICRO_PRECISION,
        "vitamin_c",
        "vitamin_e",
        "thiamin",
        "riboflavin",
        "niacin",
        "vitamin_b6",
        "pantothenic_acid",
    ),
    *_fields(
        "vitamin",
        "µg",
        MICRO_PRECISION,
        "vitamin_a",
        "vitamin_d",
        "vitamin_k",
        "folate",
        "vitamin_b12",
        "biotin",
    ),
    *_fields(
        "mineral",
        "mg",
        MICRO_PRECISION,
        "calcium",
        "iron",
        "magnesium",
        "phosphorus",
        "potassium",
        "zinc",
        "copper",
        "manganese",
    ),
    *_fields(
        "mineral", "µg", MICRO_PRECISION, "selenium", "iodine", "chromium", "molybdenum"
    ),
    *_fields(
        "fatty_acid",
        "g",
        MACRO_PRECISION,
        "saturated_fats",
        "monounsaturated_fats",
        "polyunsaturated_fats",
        "trans_fats",
    ),
    NutrientField("cholesterol", "mg", MICRO_PRECISION, "fatty_acid"),
    NutrientField("alcohol", "g", MACRO_PRECISION, "other"),
    NutrientField("caffeine", "mg", MICRO_PRECISION, "other"),
    NutrientField("water", "g", MACRO_PRECISION, "other"),
]

NUTRIENT_SCHEMA: dict[str, NutrientField] = {item.name: item for item in _FIELDS}

# Materialized meal total column -> schema field.
MEAL_TOTAL_FIELDS: dict[str, str] = {
    "total_calories": "calories",
    "total_proteins": "proteins",
    "total_carbs": "carbs",
    "total_fats": "fats",
    "total_fiber": "fiber",
}

NutrientValues = dict[str, float | None]


def round_to(value: float, digits: int) -> float:
    """Round half-up to a fixed number of decimals."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def nutrients_in_group(group: str) -> list[str]:
    """Return schema field names belonging to a group."""
    return [item.name for item in _FIELDS if item.group == group]


@dataclass(frozen=True)
class ProductProfile:
    """Per-100g nutrient profile of a catalog product."""

    id: UUID
    name: str
    nutrients: NutrientValues = field(default_factory=dict)
    brand: str | None = None

    def value(self, name: str) -> float | None:
        """Return a per-100g value, None when unknown."""
        return self.nutrients.get(name)


def round_int(value: float) -> int:
    """Round half-up to the nearest integer."""
    return int(round_to(value, 0))
