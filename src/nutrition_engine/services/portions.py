"""Portion scaling of per-100g nutrient profiles."""

import math

from nutrition_engine.domain.errors import ValidationError
from nutrition_engine.domain.nutrients import NUTRIENT_SCHEMA, NutrientValues, round_to

# Grams (or millilitres at density 1) per unit.
UNIT_TO_GRAMS: dict[str, float] = {
    "g": 1.0,
    "mg": 0.001,
    "kg": 1000.0,
    "ml": 1.0,
    "cl": 10.0,
    "dl": 100.0,
    "l": 1000.0,
    "oz": 28.35,
    "lb": 453.6,
    "cup": 240.0,
    "tablespoon": 15.0,
    "teaspoon": 5.0,
}


def validate_quantity(quantity: float) -> float:
    """Return the quantity as float or raise for non-positive values."""
    if isinstance(quantity, bool) or not isinstance(quantity, int | float):
        raise ValidationError("Quantity must be a number", field="quantity")
    if not math.isfinite(quantity) or quantity <= 0:
        raise ValidationError("Quantity must be a positive number", field="quantity")
    return float(quantity)


def to_grams(quantity: float, unit: str) -> float:
    """Normalize a quantity in a supported unit to grams."""
    factor = UNIT_TO_GRAMS.get(unit.strip().lower())
    if factor is None:
        raise ValidationError(f"Unsupported unit: {unit}", field="unit")
    return validate_quantity(quantity) * factor


def scale(nutrients: NutrientValues, quantity: float) -> NutrientValues:
    """Scale a per-100g profile to an absolute portion of `quantity` grams.

    Unknown (None) values stay None; fields outside the schema are dropped.
    """
    multiplier = validate_quantity(quantity) / 100
    scaled: NutrientValues = {}
    for name, nutrient in NUTRIENT_SCHEMA.items():
        if name not in nutrients:
            continue
        value = nutrients[name]
        if value is None:
            scaled[name] = None
            continue
        scaled[name] = round_to(value * multiplier, nutrient.precision)
    return scaled
