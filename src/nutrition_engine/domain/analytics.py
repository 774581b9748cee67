"""Domain models produced by the analytics engine."""

from dataclasses import dataclass, field
from datetime import date

from nutrition_engine.domain.trends import TrendRow


@dataclass(frozen=True)
class NutritionStats:
    """Averages and sums over a range of trend rows."""

    total_days: int = 0
    avg_calories: float = 0.0
    avg_proteins: float = 0.0
    avg_carbs: float = 0.0
    avg_fats: float = 0.0
    avg_fiber: float = 0.0
    avg_water: float = 0.0
    total_calories: float = 0.0
    total_calories_burned: float = 0.0
    total_meals: int = 0
    total_activities: int = 0
    avg_weight: float | None = None
    min_weight: float | None = None
    max_weight: float | None = None


@dataclass(frozen=True)
class ProgressPoint:
    """Percent of goal reached on a single day."""

    day: date
    calories_consumed: float
    calories_goal: float
    calories_progress: float | None
    proteins_consumed: float
    proteins_goal: float
    proteins_progress: float | None
    carbs_consumed: float
    carbs_goal: float
    carbs_progress: float | None
    fats_consumed: float
    fats_goal: float
    fats_progress: float | None


@dataclass(frozen=True)
class Streaks:
    """Consecutive success-day counters."""

    current: int = 0
    best: int = 0


@dataclass(frozen=True)
class PeriodReport:
    """Stats and adherence for one calendar partition."""

    start: date
    end: date
    stats: NutritionStats
    streaks: Streaks
    success_days: int
    success_rate: float
    daily_trends: list[TrendRow] = field(default_factory=list)


@dataclass(frozen=True)
class RollupReport:
    """Partitioned report over a date range."""

    period: str
    start: date
    end: date
    summary: NutritionStats
    streaks: Streaks
    success_days: int
    success_rate: float
    partitions: list[PeriodReport] = field(default_factory=list)


@dataclass(frozen=True)
class MetricChange:
    """Difference of one metric between two periods."""

    period_a: float
    period_b: float
    change: float
    percent_change: float


@dataclass(frozen=True)
class PeriodComparison:
    """Stats of two periods and their per-metric changes."""

    period_a: PeriodReport
    period_b: PeriodReport
    comparison: dict[str, MetricChange]


@dataclass(frozen=True)
class Dashboard:
    """Overview of the most recent days."""

    start: date
    end: date
    days: int
    summary: NutritionStats
    streaks: Streaks
    recent_progress: list[ProgressPoint]
    trends_count: int


@dataclass(frozen=True)
class Insight:
    """A short observation about recent tracking.

    `level` is one of success, info or warning.
    """

    kind: str
    title: str
    level: str
    message: str
    value: float
