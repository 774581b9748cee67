"""Per-day trend recording."""

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Protocol, TypeVar
from uuid import UUID

from nutrition_engine.domain.errors import ValidationError
from nutrition_engine.domain.nutrients import round_to
from nutrition_engine.domain.trends import COUNT_COLUMNS, TREND_VALUE_DEFAULTS, TrendRow
from nutrition_engine.services.goals import GoalRepository
from nutrition_engine.services.meals import MealRepository

T = TypeVar("T")

_logger = logging.getLogger(__name__)


class TrendRepository(Protocol):
    """Persistence interface for daily trend rows."""

    def run_atomic(self, fn: "Callable[[TrendRepository], T]") -> T:
        """Run `fn` with a repository bound to one all-or-nothing transaction."""

    def upsert(
        self, user_id: UUID, day: date, values: Mapping[str, float | int | None]
    ) -> TrendRow:
        """Insert or update the (user_id, day) row in one statement."""

    def get_trend(self, user_id: UUID, day: date) -> TrendRow | None:
        """Return the row of one day."""

    def list_trends(
        self, user_id: UUID, date_from: date, date_to: date
    ) -> list[TrendRow]:
        """Return rows within an inclusive range, ascending by date."""


def validate_trend_values(
    values: Mapping[str, object],
) -> dict[str, float | int | None]:
    """Check column names and values of a trend update."""
    unknown = sorted(set(values) - set(TREND_VALUE_DEFAULTS))
    if unknown:
        raise ValidationError(
            f"Unknown trend columns: {', '.join(unknown)}", field=unknown[0]
        )
    cleaned: dict[str, float | int | None] = {}
    for name, value in values.items():
        if value is None:
            if name != "weight_kg":
                raise ValidationError(f"{name} cannot be null", field=name)
            cleaned[name] = None
            continue
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ValidationError(f"{name} must be a number", field=name)
        if not math.isfinite(value) or value < 0:
            raise ValidationError(f"{name} must be a non-negative number", field=name)
        if name in COUNT_COLUMNS:
            if int(value) != value:
                raise ValidationError(f"{name} must be a whole number", field=name)
            cleaned[name] = int(value)
        else:
            cleaned[name] = float(value)
    return cleaned


@dataclass
class TrendService:
    """Maintains one aggregate trend row per user per day."""

    repository: TrendRepository
    meals: MealRepository
    goals: GoalRepository

    def upsert_daily_trend(
        self, user_id: UUID, day: date, values: Mapping[str, object]
    ) -> TrendRow:
        """Merge the given columns into the day's row, creating it if needed."""
        cleaned = validate_trend_values(values)
        row = self.repository.upsert(user_id, day, cleaned)
        _logger.info(
            "Trend upserted: user_id=%s date=%s columns=%s",
            user_id,
            day.isoformat(),
            sorted(cleaned),
        )
        return row

    def get_trends(self, user_id: UUID, date_from: date, date_to: date) -> list[TrendRow]:
        if date_from > date_to:
            return []
        return self.repository.list_trends(user_id, date_from, date_to)

    def record_meals_for_day(self, user_id: UUID, day: date) -> TrendRow:
        """Refresh consumed totals and goal targets of a day from its meals."""
        return self.repository.run_atomic(lambda _repo: self._record_meals(user_id, day))

    def _record_meals(self, user_id: UUID, day: date) -> TrendRow:
        meals = self.meals.list_meals(user_id, day, day)
        values: dict[str, float | int | None] = {
            "calories_consumed": round_to(sum(m.total_calories for m in meals), 1),
            "proteins_consumed": round_to(sum(m.total_proteins for m in meals), 1),
            "carbs_consumed": round_to(sum(m.total_carbs for m in meals), 1),
            "fats_consumed": round_to(sum(m.total_fats for m in meals), 1),
            "fiber_consumed": round_to(sum(m.total_fiber for m in meals), 1),
            "meals_count": len(meals),
        }
        goal = self.goals.get_active_goal(user_id)
        if goal is None:
            values |= {
                "calories_goal": 0.0,
                "proteins_goal": 0.0,
                "carbs_goal": 0.0,
                "fats_goal": 0.0,
            }
        else:
            macros = goal.target_macros
            values |= {
                "calories_goal": float(goal.target_calories),
                "proteins_goal": float(macros.protein),
                "carbs_goal": float(macros.carbs),
                "fats_goal": float(macros.fat),
            }
        return self.upsert_daily_trend(user_id, day, values)

    def record_activity(
        self, user_id: UUID, day: date, calories_burned: float, activities_count: int
    ) -> TrendRow:
        return self.upsert_daily_trend(
            user_id,
            day,
            {"calories_burned": calories_burned, "activities_count": activities_count},
        )

    def record_water_and_weight(
        self,
        user_id: UUID,
        day: date,
        water_consumed: float | None = None,
        weight_kg: float | None = None,
    ) -> TrendRow:
        values: dict[str, object] = {}
        if water_consumed is not None:
            values["water_consumed"] = water_consumed
        if weight_kg is not None:
            values["weight_kg"] = weight_kg
        if not values:
            raise ValidationError("Nothing to record: give water or weight")
        return self.upsert_daily_trend(user_id, day, values)
