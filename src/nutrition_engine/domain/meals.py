"""Domain models for meals and their line items."""

from dataclasses import dataclass, field
from datetime import date, datetime
from datetime import time as time_of_day
from enum import StrEnum
from uuid import UUID

from nutrition_engine.domain.nutrients import NutrientValues


class MealType(StrEnum):
    """Kinds of meal a user can log."""

    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


@dataclass(frozen=True)
class MealItemInput:
    """Requested line item for a new or existing meal."""

    product_id: UUID
    quantity: float
    unit: str = "g"


@dataclass(frozen=True)
class MealItemRecord:
    """Meal item row with its scaled nutrient snapshot."""

    id: UUID
    meal_id: UUID
    product_id: UUID
    quantity: float
    unit: str
    nutrients: NutrientValues
    created_at: datetime | None = None

    @property
    def calories(self) -> float | None:
        return self.nutrients.get("calories")

    @property
    def proteins(self) -> float | None:
        return self.nutrients.get("proteins")

    @property
    def carbs(self) -> float | None:
        return self.nutrients.get("carbs")

    @property
    def fats(self) -> float | None:
        return self.nutrients.get("fats")

    @property
    def fiber(self) -> float | None:
        return self.nutrients.get("fiber")


@dataclass(frozen=True)
class MealTotals:
    """Materialized totals of a meal."""

    total_calories: float = 0.0
    total_proteins: float = 0.0
    total_carbs: float = 0.0
    total_fats: float = 0.0
    total_fiber: float = 0.0


@dataclass(frozen=True)
class MealRecord:
    """Meal with items and materialized totals."""

    id: UUID
    user_id: UUID
    meal_type: MealType
    date: date
    totals: MealTotals
    items: list[MealItemRecord] = field(default_factory=list)
    time: time_of_day | None = None
    name: str | None = None
    location: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def total_calories(self) -> float:
        return self.totals.total_calories

    @property
    def total_proteins(self) -> float:
        return self.totals.total_proteins

    @property
    def total_carbs(self) -> float:
        return self.totals.total_carbs

    @property
    def total_fats(self) -> float:
        return self.totals.total_fats

    @property
    def total_fiber(self) -> float:
        return self.totals.total_fiber


@dataclass(frozen=True)
class MacroDistribution:
    """Share of a meal's energy coming from each macronutrient, in percent."""

    carbs: int
    proteins: int
    fats: int


@dataclass(frozen=True)
class MealDistribution:
    """How a user's meals spread over meal types and times of day."""

    total_meals: int
    meals_per_day: float
    counts: dict[MealType, int] = field(default_factory=dict)
    average_times: dict[MealType, str] = field(default_factory=dict)
    time_consistency: dict[MealType, float] = field(default_factory=dict)


@dataclass(frozen=True)
class MealStats:
    """Counts and average totals of a set of meals."""

    total_meals: int
    average_calories: float
    average_proteins: float
    average_carbs: float
    average_fats: float
    counts: dict[MealType, int] = field(default_factory=dict)
