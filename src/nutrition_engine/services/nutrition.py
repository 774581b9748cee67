"""Nutritional quality scoring and intake assessment."""

import logging
import operator
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from nutrition_engine.domain.assessments import (
    Deficiency,
    Excess,
    NutrientAnalysis,
    NutrientReference,
    QualityCategory,
    QualityScore,
)
from nutrition_engine.domain.errors import NotFoundError
from nutrition_engine.domain.goals import UserBiometrics
from nutrition_engine.domain.meals import MealItemRecord, MealRecord
from nutrition_engine.domain.nutrients import (
    NUTRIENT_SCHEMA,
    NutrientValues,
    round_int,
    round_to,
)
from nutrition_engine.services.goals import UserRepository, normalize_gender
from nutrition_engine.services.meals import MealRepository, ProductRepository
from nutrition_engine.services.portions import to_grams

_logger = logging.getLogger(__name__)

# (threshold, points) tiers, first match wins.
_ENERGY_DENSITY_TIERS = ((1.5, 10), (2.5, 7), (4.0, 4))
_PROTEIN_SHARE_TIERS = ((20.0, 15), (12.0, 10), (6.0, 5))
_FIBER_TIERS = ((6.0, 15), (3.0, 10), (1.5, 5))
_SATURATED_SHARE_TIERS = ((5.0, 10), (10.0, 7), (15.0, 3))
_SUGAR_SHARE_TIERS = ((5.0, 10), (15.0, 7), (25.0, 3))
_SODIUM_TIERS = ((140.0, 10), (400.0, 7), (600.0, 3))

QUALITY_MICRONUTRIENTS = ("vitamin_a", "vitamin_c", "vitamin_d", "calcium", "iron")
MICRONUTRIENT_POINTS = 30
MAX_QUALITY_SCORE = 100

_QUALITY_CATEGORIES = (
    (80, QualityCategory.EXCELLENT),
    (60, QualityCategory.GOOD),
    (40, QualityCategory.SUFFICIENT),
)

# Adult daily reference amounts: nutrient -> (male, female).
REFERENCE_INTAKES: dict[str, tuple[float, float]] = {
    "vitamin_a": (900, 700),
    "vitamin_c": (90, 75),
    "vitamin_d": (15, 15),
    "vitamin_e": (15, 15),
    "vitamin_k": (120, 90),
    "thiamin": (1.2, 1.1),
    "riboflavin": (1.3, 1.1),
    "niacin": (16, 14),
    "vitamin_b6": (1.3, 1.3),
    "folate": (400, 400),
    "vitamin_b12": (2.4, 2.4),
    "calcium": (1000, 1000),
    "iron": (8, 18),
    "magnesium": (400, 310),
    "phosphorus": (700, 700),
    "potassium": (3500, 3500),
    "zinc": (11, 8),
    "selenium": (55, 55),
}

# Daily upper limits: nutrient -> (unit, maximum). `*_percent` entries are
# shares of total energy.
INTAKE_LIMITS: dict[str, tuple[str, float]] = {
    "sodium": ("mg", 2300),
    "proteins_percent": ("%", 35),
    "carbs_percent": ("%", 65),
    "fats_percent": ("%", 35),
    "saturated_fats_percent": ("%", 10),
    "sugars_percent": ("%", 10),
}

_ENERGY_SHARES = {
    "proteins_percent": ("proteins", 4),
    "carbs_percent": ("carbs", 4),
    "fats_percent": ("fats", 9),
    "saturated_fats_percent": ("saturated_fats", 9),
    "sugars_percent": ("sugars", 4),
}

DEFICIENCY_PERCENT = 50
SEVERE_DEFICIENCY_PERCENT = 25


def _tier_points(
    value: float,
    tiers: tuple[tuple[float, int], ...],
    matches: Callable[[float, float], bool],
) -> int:
    for threshold, points in tiers:
        if matches(value, threshold):
            return points
    return 0


def energy_percent(grams: float | None, kcal_per_gram: int, calories: float | None) -> float:
    """Share of total energy supplied by `grams` of a nutrient, 0 without energy."""
    if not grams or not calories or calories <= 0:
        return 0.0
    return grams * kcal_per_gram / calories * 100


def evaluate_quality(nutrients: Mapping[str, float | None]) -> QualityScore:
    """Score a per-100g profile.

    Points come from energy density, protein and fibre content, saturated fat,
    sugar and sodium limits, and the presence of key micronutrients. Unknown
    values count as zero.
    """
    calories = nutrients.get("calories") or 0.0
    factors: list[str] = []

    density_points = _tier_points(calories / 100, _ENERGY_DENSITY_TIERS, operator.lt)
    protein_points = _tier_points(
        energy_percent(nutrients.get("proteins"), 4, calories),
        _PROTEIN_SHARE_TIERS,
        operator.ge,
    )
    fiber_points = _tier_points(nutrients.get("fiber") or 0.0, _FIBER_TIERS, operator.ge)
    if density_points == _ENERGY_DENSITY_TIERS[0][1]:
        factors.append("low energy density")
    if protein_points == _PROTEIN_SHARE_TIERS[0][1]:
        factors.append("high protein")
    if fiber_points == _FIBER_TIERS[0][1]:
        factors.append("high fiber")

    score: float = density_points + protein_points + fiber_points
    score += _tier_points(
        energy_percent(nutrients.get("saturated_fats"), 9, calories),
        _SATURATED_SHARE_TIERS,
        operator.le,
    )
    score += _tier_points(
        energy_percent(nutrients.get("sugars"), 4, calories),
        _SUGAR_SHARE_TIERS,
        operator.le,
    )
    score += _tier_points(nutrients.get("sodium") or 0.0, _SODIUM_TIERS, operator.le)
    present = sum(1 for name in QUALITY_MICRONUTRIENTS if (nutrients.get(name) or 0) > 0)
    score += present / len(QUALITY_MICRONUTRIENTS) * MICRONUTRIENT_POINTS

    score = min(score, MAX_QUALITY_SCORE)
    percentage = round_int(score / MAX_QUALITY_SCORE * 100)
    category = next(
        (category for floor, category in _QUALITY_CATEGORIES if percentage >= floor),
        QualityCategory.POOR,
    )
    return QualityScore(
        score=round_to(score, 1),
        percentage=percentage,
        category=category,
        factors=factors,
        max_score=MAX_QUALITY_SCORE,
    )


def sum_nutrients(profiles: Iterable[Mapping[str, float | None]]) -> NutrientValues:
    """Add nutrient snapshots field by field.

    A field is reported when at least one snapshot knows it; unknown values
    add nothing.
    """
    sums: dict[str, float] = {}
    for profile in profiles:
        for name, value in profile.items():
            if name in NUTRIENT_SCHEMA and value is not None:
                sums[name] = sums.get(name, 0.0) + value
    return {
        name: round_to(value, NUTRIENT_SCHEMA[name].precision)
        for name, value in sums.items()
    }


def per_100g(items: Iterable[MealItemRecord]) -> NutrientValues | None:
    """Per-100g profile of a set of meal items, None when they weigh nothing."""
    items = list(items)
    grams = sum(to_grams(item.quantity, item.unit) for item in items)
    if grams <= 0:
        return None
    totals = sum_nutrients(item.nutrients for item in items)
    return {
        name: round_to(value / grams * 100, NUTRIENT_SCHEMA[name].precision)
        for name, value in totals.items()
    }


def nutrient_recommendations(gender: str | None) -> dict[str, NutrientReference]:
    """Daily adult references; unknown genders get the male amounts."""
    column = 1 if normalize_gender(gender) == "female" else 0
    references = {
        name: NutrientReference(
            nutrient=name,
            unit=NUTRIENT_SCHEMA[name].unit,
            recommended=float(amounts[column]),
        )
        for name, amounts in REFERENCE_INTAKES.items()
    }
    for name, (unit, maximum) in INTAKE_LIMITS.items():
        references[name] = NutrientReference(nutrient=name, unit=unit, maximum=float(maximum))
    return references


def energy_shares(intake: Mapping[str, float | None]) -> dict[str, float]:
    """Percent of energy from each macro, saturated fat and sugar."""
    calories = intake.get("calories")
    return {
        name: round_to(energy_percent(intake.get(nutrient), kcal, calories), 1)
        for name, (nutrient, kcal) in _ENERGY_SHARES.items()
    }


def analyze_deficiencies(
    intake: Mapping[str, float | None],
    references: Mapping[str, NutrientReference],
) -> NutrientAnalysis:
    """Nutrients under half their reference and nutrients over their limit.

    Energy shares are derived from the intake's calories when present.
    """
    current_values = {**intake, **energy_shares(intake)}
    deficiencies: list[Deficiency] = []
    excesses: list[Excess] = []
    for name, reference in references.items():
        current = current_values.get(name) or 0.0
        if reference.recommended:
            percentage = current / reference.recommended * 100
            if percentage < DEFICIENCY_PERCENT:
                deficiencies.append(
                    Deficiency(
                        nutrient=name,
                        current=current,
                        recommended=reference.recommended,
                        deficit=round_to(reference.recommended - current, 2),
                        percentage=round_to(percentage, 1),
                        severity=(
                            "severe"
                            if percentage < SEVERE_DEFICIENCY_PERCENT
                            else "moderate"
                        ),
                    )
                )
        elif reference.maximum and current > reference.maximum:
            excesses.append(
                Excess(
                    nutrient=name,
                    current=current,
                    maximum=reference.maximum,
                    excess=round_to(current - reference.maximum, 2),
                    percentage=round_to(current / reference.maximum * 100, 1),
                )
            )
    return NutrientAnalysis(deficiencies=deficiencies, excesses=excesses)


@dataclass
class NutritionService:
    """Quality scores and intake assessments over products and logged meals."""

    products: ProductRepository
    meals: MealRepository
    users: UserRepository

    def product_quality(self, product_id: UUID) -> QualityScore:
        product = self.products.get_product(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return evaluate_quality(product.nutrients)

    def meal_quality(self, meal_id: UUID) -> QualityScore | None:
        """Quality of a meal's combined per-100g profile, None for an empty meal."""
        meal = self.meals.get_meal(meal_id)
        if meal is None:
            raise NotFoundError("Meal", meal_id)
        profile = per_100g(meal.items)
        return evaluate_quality(profile) if profile is not None else None

    def daily_intake(self, user_id: UUID, day: date) -> NutrientValues:
        """Sum of every nutrient logged by a user on one day."""
        meals: list[MealRecord] = self.meals.list_meals(user_id, day, day)
        return sum_nutrients(item.nutrients for meal in meals for item in meal.items)

    def recommendations(self, user_id: UUID) -> dict[str, NutrientReference]:
        return nutrient_recommendations(self._require_user(user_id).gender)

    def analyze_day(self, user_id: UUID, day: date) -> NutrientAnalysis:
        """Deficiencies and excesses of a user's intake on one day."""
        analysis = analyze_deficiencies(
            self.daily_intake(user_id, day), self.recommendations(user_id)
        )
        _logger.debug(
            "Intake analyzed: user_id=%s date=%s deficiencies=%s excesses=%s",
            user_id,
            day.isoformat(),
            len(analysis.deficiencies),
            len(analysis.excesses),
        )
        return analysis

    def _require_user(self, user_id: UUID) -> UserBiometrics:
        user = self.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user
