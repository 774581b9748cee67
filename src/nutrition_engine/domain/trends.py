"""Domain models for per-day nutrition trends."""

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

# Columns of a trend row that callers may set, with their insert defaults.
TREND_VALUE_DEFAULTS: dict[str, float | int | None] = {
    "calories_consumed": 0.0,
    "calories_goal": 0.0,
    "calories_burned": 0.0,
    "proteins_consumed": 0.0,
    "proteins_goal": 0.0,
    "carbs_consumed": 0.0,
    "carbs_goal": 0.0,
    "fats_consumed": 0.0,
    "fats_goal": 0.0,
    "fiber_consumed": 0.0,
    "water_consumed": 0.0,
    "meals_count": 0,
    "activities_count": 0,
    "weight_kg": None,
}

COUNT_COLUMNS = frozenset({"meals_count", "activities_count"})


@dataclass(frozen=True)
class TrendRow:
    """One aggregate row per user per day."""

    user_id: UUID
    date: date
    calories_consumed: float = 0.0
    calories_goal: float = 0.0
    calories_burned: float = 0.0
    proteins_consumed: float = 0.0
    proteins_goal: float = 0.0
    carbs_consumed: float = 0.0
    carbs_goal: float = 0.0
    fats_consumed: float = 0.0
    fats_goal: float = 0.0
    fiber_consumed: float = 0.0
    water_consumed: float = 0.0
    meals_count: int = 0
    activities_count: int = 0
    weight_kg: float | None = None
    updated_at: datetime | None = None
