"""Goal derivation from biometrics and goal lifecycle management."""

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Protocol, TypeVar
from uuid import UUID, uuid4

import pydantic

from nutrition_engine.domain.errors import (
    DomainComputationError,
    NotFoundError,
    ValidationError,
)
from nutrition_engine.domain.goals import (
    GoalOverrides,
    GoalRecommendation,
    GoalRecord,
    GoalStatus,
    GoalType,
    MacroTargets,
    UserBiometrics,
    WeightProgress,
    macro_grams,
)
from nutrition_engine.domain.nutrients import round_int, round_to

T = TypeVar("T")

_logger = logging.getLogger(__name__)

KCAL_PER_KG = 7700

ACTIVITY_MULTIPLIERS: dict[str, float] = {
    "sedentary": 1.2,
    "light": 1.375,
    "moderate": 1.55,
    "active": 1.725,
    "very_active": 1.9,
}

# Extra millilitres of water per day on top of 35 ml/kg.
WATER_ACTIVITY_BONUS_ML: dict[str, int] = {
    "sedentary": 0,
    "light": 300,
    "moderate": 500,
    "active": 700,
    "very_active": 1000,
}
WATER_CLIMATE_ADJUSTMENT_ML: dict[str, int] = {"temperate": 0, "hot": 500, "cold": -200}
MIN_WATER_ML = 1500

DEFAULT_WEEKLY_CHANGE: dict[GoalType, float] = {
    GoalType.WEIGHT_LOSS: -0.5,
    GoalType.WEIGHT_GAIN: 0.3,
    GoalType.MUSCLE_GAIN: 0.2,
    GoalType.MAINTENANCE: 0.0,
}

DEFAULT_CARBS_PERCENT = 50.0
DEFAULT_PROTEIN_PERCENT = 20.0
DEFAULT_FAT_PERCENT = 30.0

WEIGHT_TRACK_TOLERANCE = 0.2

MUSCLE_GAIN_PROTEIN_G_PER_KG = (1.6, 2.2)

_GENDERS = {"male": "male", "m": "male", "female": "female", "f": "female"}
_CALORIE_FLOOR_MODES = ("none", "generic", "by_gender")
_CLEARABLE_GOAL_FIELDS = frozenset({"target_weight", "target_water_liters", "target_date"})


class GoalRepository(Protocol):
    """Persistence interface for nutrition goals."""

    def run_atomic(self, fn: "Callable[[GoalRepository], T]") -> T:
        """Run `fn` with a repository bound to one all-or-nothing transaction."""

    def insert_goal(self, goal: GoalRecord) -> None:
        """Insert a goal row."""

    def get_goal(self, goal_id: UUID) -> GoalRecord | None:
        """Return a goal by id."""

    def get_active_goal(self, user_id: UUID) -> GoalRecord | None:
        """Return the user's active goal, if any."""

    def list_goals(self, user_id: UUID) -> list[GoalRecord]:
        """Return a user's goals, newest first."""

    def set_status(self, goal_id: UUID, status: GoalStatus) -> None:
        """Store a goal's lifecycle state."""

    def supersede_active_goals(
        self, user_id: UUID, except_goal_id: UUID | None = None
    ) -> int:
        """Mark every other active goal of the user as superseded."""

    def update_goal(self, goal_id: UUID, changes: dict[str, object]) -> None:
        """Rewrite target fields of a goal."""


class UserRepository(Protocol):
    """Read access to user biometrics."""

    def get_user(self, user_id: UUID) -> UserBiometrics | None:
        """Return biometrics for a user, if present."""


@dataclass(frozen=True)
class CaloriePolicy:
    """Optional lower bound applied to derived calorie targets."""

    generic_floor: int = 1200
    male_floor: int = 1500
    mode: str = "none"

    def __post_init__(self) -> None:
        if self.mode not in _CALORIE_FLOOR_MODES:
            raise ValidationError(
                f"Unknown calorie floor mode: {self.mode}", field="calorie_floor_mode"
            )

    def floor_for(self, gender: str | None) -> int | None:
        """Return the floor that applies to a gender under this policy."""
        if self.mode == "none":
            return None
        if self.mode == "by_gender" and normalize_gender(gender) == "male":
            return self.male_floor
        return self.generic_floor

    def apply(self, calories: int, gender: str | None) -> int:
        floor = self.floor_for(gender)
        if floor is None or calories >= floor:
            return calories
        _logger.debug("Calorie target %s raised to floor %s", calories, floor)
        return floor


def normalize_gender(gender: str | None) -> str | None:
    if gender is None:
        return None
    return _GENDERS.get(gender.strip().lower())


def parse_goal_type(value: GoalType | str) -> GoalType:
    """Return a GoalType or raise for unknown values."""
    try:
        return GoalType(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(f"Invalid goal type: {value}", field="goal_type") from exc


def parse_overrides(
    overrides: GoalOverrides | Mapping[str, object] | None,
) -> GoalOverrides:
    """Validate caller overrides into a GoalOverrides model."""
    if overrides is None:
        return GoalOverrides()
    if isinstance(overrides, GoalOverrides):
        return overrides
    try:
        return GoalOverrides.model_validate(dict(overrides))
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or None
        raise ValidationError(
            f"Invalid goal override: {first['msg']}", field=location
        ) from exc


def calculate_bmr(
    weight_kg: float | None,
    height_cm: float | None,
    age: int | None,
    gender: str | None,
) -> float:
    """Mifflin-St Jeor basal metabolic rate in kcal/day."""
    inputs = {"weight_kg": weight_kg, "height_cm": height_cm, "age": age, "gender": gender}
    missing = tuple(name for name, value in inputs.items() if value is None)
    if missing:
        raise DomainComputationError(
            f"Missing biometric inputs: {', '.join(missing)}", missing=missing
        )
    normalized = normalize_gender(gender)
    if normalized is None:
        raise DomainComputationError(f"Unsupported gender: {gender}", missing=("gender",))
    base = 10 * weight_kg + 6.25 * height_cm - 5 * age  # type: ignore[operator]
    return base + 5 if normalized == "male" else base - 161


def calculate_tdee(bmr: float, activity_level: str) -> float:
    """Scale BMR by the activity multiplier."""
    multiplier = ACTIVITY_MULTIPLIERS.get(str(activity_level).strip().lower())
    if multiplier is None:
        raise ValidationError(
            f"Invalid activity level: {activity_level}", field="activity_level"
        )
    return bmr * multiplier


def default_weekly_change(goal_type: GoalType | str) -> float:
    return DEFAULT_WEEKLY_CHANGE[parse_goal_type(goal_type)]


def calculate_target_calories(tdee: float, weekly_change: float) -> int:
    """Daily calories that produce `weekly_change` kg per week."""
    return round_int(tdee + weekly_change * KCAL_PER_KG / 7)


def calculate_macro_grams(
    calories: float, carbs_percent: float, protein_percent: float, fat_percent: float
) -> MacroTargets:
    return macro_grams(
        calories,
        carbs_percent=carbs_percent,
        protein_percent=protein_percent,
        fat_percent=fat_percent,
    )


def validate_macro_split(
    carbs_percent: float, protein_percent: float, fat_percent: float
) -> None:
    """Reject a percentage split that does not add up to 100."""
    split = {
        "carbs_percent": carbs_percent,
        "protein_percent": protein_percent,
        "fat_percent": fat_percent,
    }
    for name, value in split.items():
        if not 0 <= value <= 100:  # noqa: PLR2004
            raise ValidationError(f"{name} must be between 0 and 100", field=name)
    total = sum(split.values())
    if abs(total - 100) > 0.01:  # noqa: PLR2004
        raise ValidationError(
            f"Macro percentages must sum to 100, got {total:g}", field="macro_split"
        )


def percent_of(current: float | None, target: float | None) -> float | None:
    """Percent of target reached, None when there is no target."""
    if not target or not math.isfinite(target):
        return None
    return round_to((current or 0.0) / target * 100, 1)


def calculate_goal_progress(
    goal: GoalRecord, current: Mapping[str, float | None]
) -> dict[str, float | None]:
    """Percent of each daily target reached by `current` intake.

    `current` holds calories (kcal), carbs, proteins, fats (g) and water (l).
    """
    macros = goal.target_macros
    targets = {
        "calories": goal.target_calories,
        "carbs": macros.carbs,
        "proteins": macros.protein,
        "fats": macros.fat,
        "water": goal.target_water_liters,
    }
    return {name: percent_of(current.get(name), target) for name, target in targets.items()}


def calculate_bmi(weight_kg: float, height_cm: float) -> float | None:
    if not weight_kg or not height_cm:
        return None
    height_m = height_cm / 100
    return round_to(weight_kg / (height_m * height_m), 1)


def bmi_category(bmi: float | None) -> str | None:
    if bmi is None:
        return None
    if bmi < 18.5:  # noqa: PLR2004
        return "underweight"
    if bmi < 25:  # noqa: PLR2004
        return "normal"
    if bmi < 30:  # noqa: PLR2004
        return "overweight"
    return "obese"


def calculate_water_target(
    weight_kg: float, activity_level: str | None, climate: str = "temperate"
) -> float:
    """Daily water target in litres.

    35 ml/kg plus activity and climate adjustments, never below 1.5 l.
    Unknown activity levels and climates add nothing.
    """
    millilitres = (
        weight_kg * 35
        + WATER_ACTIVITY_BONUS_ML.get(str(activity_level).strip().lower(), 0)
        + WATER_CLIMATE_ADJUSTMENT_ML.get(climate.strip().lower(), 0)
    )
    return round_to(max(millilitres, MIN_WATER_ML) / 1000, 1)


def goal_recommendations(
    goal: GoalRecord, weight_kg: float | None = None
) -> list[GoalRecommendation]:
    """Calorie, protein and water advice for a goal.

    Muscle gain protein advice is per kg of body weight and names grams only
    when the weight is known.
    """
    calories = goal.target_calories
    weekly = abs(goal.weekly_weight_change)
    protein = goal.target_macros.protein
    advice = []
    if goal.goal_type is GoalType.WEIGHT_LOSS:
        advice.append(
            GoalRecommendation(
                "calories",
                f"Eat about {calories} kcal per day to lose {weekly:g} kg per week",
                calories,
            )
        )
        advice.append(
            GoalRecommendation(
                "protein", f"Keep protein near {protein} g per day to preserve muscle", protein
            )
        )
    elif goal.goal_type is GoalType.MUSCLE_GAIN:
        advice.append(
            GoalRecommendation(
                "calories", f"Eat about {calories} kcal per day to support training", calories
            )
        )
        low, high = MUSCLE_GAIN_PROTEIN_G_PER_KG
        if weight_kg:
            advice.append(
                GoalRecommendation(
                    "protein",
                    f"Aim for {round_int(weight_kg * low)}-{round_int(weight_kg * high)} g "
                    f"protein per day ({low:g}-{high:g} g/kg)",
                    round_int(weight_kg * low),
                )
            )
        else:
            advice.append(
                GoalRecommendation(
                    "protein", f"Aim for {low:g}-{high:g} g protein per kg of body weight"
                )
            )
    elif goal.goal_type is GoalType.WEIGHT_GAIN:
        advice.append(
            GoalRecommendation(
                "calories",
                f"Eat about {calories} kcal per day to gain {weekly:g} kg per week",
                calories,
            )
        )
    else:
        advice.append(
            GoalRecommendation(
                "calories", f"Keep intake around {calories} kcal per day", calories
            )
        )
    if goal.target_water_liters:
        advice.append(
            GoalRecommendation(
                "water",
                f"Drink {goal.target_water_liters:g} l of water per day",
                goal.target_water_liters,
            )
        )
    return advice


@dataclass
class GoalService:
    """Derives goals from biometrics and keeps one active goal per user."""

    repository: GoalRepository
    users: UserRepository
    calorie_policy: CaloriePolicy = field(default_factory=CaloriePolicy)
    today: Callable[[], date] = date.today

    def derive_goal(
        self,
        user_id: UUID,
        goal_type: GoalType | str,
        overrides: GoalOverrides | Mapping[str, object] | None = None,
        *,
        activate: bool = True,
    ) -> GoalRecord:
        """Derive calorie and macro targets for a user and store the goal."""
        resolved_type = parse_goal_type(goal_type)
        options = parse_overrides(overrides)
        user = self.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        bmr, tdee = self._energy_expenditure(user, explicit=options.target_calories)
        weekly_change = (
            options.weekly_weight_change
            if options.weekly_weight_change is not None
            else DEFAULT_WEEKLY_CHANGE[resolved_type]
        )
        if options.target_calories is not None:
            target_calories = options.target_calories
        else:
            target_calories = self.calorie_policy.apply(
                calculate_target_calories(tdee, weekly_change),  # type: ignore[arg-type]
                user.gender,
            )

        carbs = _pick(options.carbs_percent, DEFAULT_CARBS_PERCENT)
        protein = _pick(options.protein_percent, DEFAULT_PROTEIN_PERCENT)
        fat = _pick(options.fat_percent, DEFAULT_FAT_PERCENT)
        validate_macro_split(carbs, protein, fat)

        water = options.target_water_liters
        if water is None and user.weight_kg:
            water = calculate_water_target(user.weight_kg, user.activity_level)

        goal = GoalRecord(
            id=uuid4(),
            user_id=user_id,
            goal_type=resolved_type,
            status=GoalStatus.ACTIVE if activate else GoalStatus.DRAFT,
            target_calories=target_calories,
            carbs_percent=carbs,
            protein_percent=protein,
            fat_percent=fat,
            weekly_weight_change=weekly_change,
            start_date=options.start_date or self.today(),
            target_weight=options.target_weight,
            target_water_liters=water,
            target_date=options.target_date,
            bmr=round_to(bmr, 1) if bmr is not None else None,
            tdee=round_to(tdee, 1) if tdee is not None else None,
        )

        def _store(repo: GoalRepository) -> None:
            if activate:
                repo.supersede_active_goals(user_id)
            repo.insert_goal(goal)

        self.repository.run_atomic(_store)
        _logger.info(
            "Goal derived: goal_id=%s user_id=%s type=%s target_calories=%s active=%s",
            goal.id,
            user_id,
            resolved_type.value,
            target_calories,
            activate,
        )
        return self.get_goal(goal.id)

    def activate_goal(self, goal_id: UUID) -> GoalRecord:
        """Make a goal the user's only active goal."""

        def _activate(repo: GoalRepository) -> GoalRecord:
            goal = _require_goal(repo.get_goal(goal_id), goal_id)
            repo.supersede_active_goals(goal.user_id, except_goal_id=goal_id)
            repo.set_status(goal_id, GoalStatus.ACTIVE)
            return goal

        goal = self.repository.run_atomic(_activate)
        _logger.info("Goal activated: goal_id=%s user_id=%s", goal_id, goal.user_id)
        return self.get_goal(goal_id)

    def deactivate_goal(self, goal_id: UUID) -> GoalRecord:
        """Deactivate a goal without activating another."""

        def _deactivate(repo: GoalRepository) -> None:
            _require_goal(repo.get_goal(goal_id), goal_id)
            repo.set_status(goal_id, GoalStatus.DEACTIVATED)

        self.repository.run_atomic(_deactivate)
        _logger.info("Goal deactivated: goal_id=%s", goal_id)
        return self.get_goal(goal_id)

    def get_goal(self, goal_id: UUID) -> GoalRecord:
        return _require_goal(self.repository.get_goal(goal_id), goal_id)

    def get_active_goal(self, user_id: UUID) -> GoalRecord | None:
        return self.repository.get_active_goal(user_id)

    def list_goals(
        self, user_id: UUID, include_inactive: bool = True
    ) -> list[GoalRecord]:
        goals = self.repository.list_goals(user_id)
        if include_inactive:
            return goals
        return [goal for goal in goals if goal.is_active]

    def update_goal_targets(
        self, goal_id: UUID, overrides: GoalOverrides | Mapping[str, object]
    ) -> GoalRecord:
        """Rewrite a goal's targets, keeping its activation state."""
        options = parse_overrides(overrides)
        changes = {
            name: value
            for name, value in options.model_dump(exclude_unset=True).items()
            if value is not None or name in _CLEARABLE_GOAL_FIELDS
        }

        def _update(repo: GoalRepository) -> None:
            goal = _require_goal(repo.get_goal(goal_id), goal_id)
            updated = replace(goal, **changes)
            validate_macro_split(
                updated.carbs_percent, updated.protein_percent, updated.fat_percent
            )
            if changes:
                repo.update_goal(goal_id, changes)

        self.repository.run_atomic(_update)
        _logger.info("Goal targets updated: goal_id=%s fields=%s", goal_id, sorted(changes))
        return self.get_goal(goal_id)

    def get_weight_progress(
        self,
        goal_id: UUID,
        current_weight: float,
        start_weight: float,
        today: date | None = None,
    ) -> WeightProgress | None:
        """Progress toward the goal's target weight, None without one."""
        goal = self.get_goal(goal_id)
        if goal.target_weight is None:
            return None
        today = today or self.today()

        total_change = goal.target_weight - start_weight
        weight_change = current_weight - start_weight
        progress = round_to(weight_change / total_change * 100, 1) if total_change else 0.0
        weeks_passed = max(0.0, (today - goal.start_date).days / 7)

        return WeightProgress(
            start_weight=start_weight,
            current_weight=current_weight,
            target_weight=goal.target_weight,
            weight_change=round_to(weight_change, 1),
            weight_remaining=round_to(goal.target_weight - current_weight, 1),
            progress_percent=progress,
            weeks_passed=round_to(weeks_passed, 1),
            estimated_weeks=_estimated_weeks(goal, start_weight),
            on_track=_is_on_track(goal.weekly_weight_change, weeks_passed, weight_change),
        )

    def get_recommendations(self, goal_id: UUID) -> list[GoalRecommendation]:
        """Advice for a goal, using the owner's current weight when known."""
        goal = self.get_goal(goal_id)
        user = self.users.get_user(goal.user_id)
        return goal_recommendations(goal, user.weight_kg if user else None)

    def _energy_expenditure(
        self, user: UserBiometrics, explicit: int | None
    ) -> tuple[float | None, float | None]:
        try:
            bmr = calculate_bmr(user.weight_kg, user.height_cm, user.age, user.gender)
            if user.activity_level is None:
                raise DomainComputationError(
                    "Missing biometric inputs: activity_level", missing=("activity_level",)
                )
            tdee = calculate_tdee(bmr, user.activity_level)
        except (DomainComputationError, ValidationError):
            if explicit is None:
                raise
            _logger.debug("Skipping BMR for user_id=%s: explicit calories given", user.id)
            return None, None
        _logger.debug("Energy expenditure user_id=%s bmr=%.1f tdee=%.1f", user.id, bmr, tdee)
        return bmr, tdee


def _estimated_weeks(goal: GoalRecord, start_weight: float) -> float | None:
    if not goal.weekly_weight_change:
        return None
    if goal.target_date is not None:
        return round_to(max(0.0, (goal.target_date - goal.start_date).days / 7), 1)
    return round_to(
        abs(goal.target_weight - start_weight) / abs(goal.weekly_weight_change),  # type: ignore[operator]
        1,
    )


def _is_on_track(weekly_change: float, weeks_passed: float, actual_change: float) -> bool:
    if not weekly_change:
        return True
    expected = weekly_change * weeks_passed
    tolerance = abs(expected * WEIGHT_TRACK_TOLERANCE)
    return abs(actual_change - expected) <= tolerance


def _pick(value: float | None, default: float) -> float:
    return default if value is None else value


def _require_goal(goal: GoalRecord | None, goal_id: UUID) -> GoalRecord:
    if goal is None:
        raise NotFoundError("Goal", goal_id)
    return goal
