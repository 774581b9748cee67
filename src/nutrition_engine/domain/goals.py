"""Domain models for nutrition goals and user biometrics."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, Field

from nutrition_engine.domain.nutrients import round_int


class GoalType(StrEnum):
    """Supported goal types."""

    WEIGHT_LOSS = "weight_loss"
    WEIGHT_GAIN = "weight_gain"
    MAINTENANCE = "maintenance"
    MUSCLE_GAIN = "muscle_gain"


class GoalStatus(StrEnum):
    """Stored lifecycle state of a goal."""

    DRAFT = "draft"
    ACTIVE = "active"
    SUPERSEDED = "superseded"
    DEACTIVATED = "deactivated"


class ActivityLevel(StrEnum):
    """Activity levels used to scale BMR into TDEE."""

    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    ACTIVE = "active"
    VERY_ACTIVE = "very_active"


@dataclass(frozen=True)
class UserBiometrics:
    """Biometric inputs for goal derivation."""

    id: UUID
    weight_kg: float | None
    height_cm: float | None
    age: int | None
    gender: str | None
    activity_level: str | None


class GoalOverrides(BaseModel):
    """Caller-supplied values that replace derived goal targets."""

    target_calories: int | None = Field(default=None, gt=0)
    weekly_weight_change: float | None = None
    carbs_percent: float | None = Field(default=None, ge=0, le=100)
    protein_percent: float | None = Field(default=None, ge=0, le=100)
    fat_percent: float | None = Field(default=None, ge=0, le=100)
    target_weight: float | None = Field(default=None, gt=0)
    target_water_liters: float | None = Field(default=None, ge=0)
    start_date: date | None = None
    target_date: date | None = None


@dataclass(frozen=True)
class MacroTargets:
    """Daily macro targets in grams."""

    carbs: int
    protein: int
    fat: int


KCAL_PER_GRAM = {"carbs": 4, "protein": 4, "fat": 9}


def macro_grams(
    calories: float, *, carbs_percent: float, protein_percent: float, fat_percent: float
) -> MacroTargets:
    """Convert a calorie target and percentage split into macro grams."""
    return MacroTargets(
        carbs=round_int(calories * carbs_percent / 100 / KCAL_PER_GRAM["carbs"]),
        protein=round_int(calories * protein_percent / 100 / KCAL_PER_GRAM["protein"]),
        fat=round_int(calories * fat_percent / 100 / KCAL_PER_GRAM["fat"]),
    )


@dataclass(frozen=True)
class GoalRecord:
    """Persisted nutrition goal."""

    id: UUID
    user_id: UUID
    goal_type: GoalType
    status: GoalStatus
    target_calories: int
    carbs_percent: float
    protein_percent: float
    fat_percent: float
    weekly_weight_change: float
    start_date: date
    target_weight: float | None = None
    target_water_liters: float | None = None
    target_date: date | None = None
    bmr: float | None = None
    tdee: float | None = None
    created_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == GoalStatus.ACTIVE

    @property
    def target_macros(self) -> MacroTargets:
        """Macro grams derived from the calorie target and split."""
        return macro_grams(
            self.target_calories,
            carbs_percent=self.carbs_percent,
            protein_percent=self.protein_percent,
            fat_percent=self.fat_percent,
        )

    def is_expired(self, today: date) -> bool:
        """Return True when the target date has passed."""
        return self.target_date is not None and self.target_date < today


@dataclass(frozen=True)
class WeightProgress:
    """Progress toward a goal's target weight."""

    start_weight: float
    current_weight: float
    target_weight: float
    weight_change: float
    weight_remaining: float
    progress_percent: float
    weeks_passed: float
    estimated_weeks: float | None
    on_track: bool


@dataclass(frozen=True)
class GoalRecommendation:
    """Practical advice derived from a goal."""

    kind: str
    message: str
    value: float | None = None
