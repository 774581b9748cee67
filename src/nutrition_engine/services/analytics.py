"""Analytics over per-day trend rows."""

import calendar
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date, timedelta
from uuid import UUID

from nutrition_engine.domain.analytics import (
    Dashboard,
    Insight,
    MetricChange,
    NutritionStats,
    PeriodComparison,
    PeriodReport,
    ProgressPoint,
    RollupReport,
    Streaks,
)
from nutrition_engine.domain.errors import ValidationError
from nutrition_engine.domain.nutrients import round_to
from nutrition_engine.domain.trends import TrendRow
from nutrition_engine.services.goals import percent_of
from nutrition_engine.services.trends import TrendRepository

_logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_TOLERANCE = 0.10

COMPARED_METRICS = (
    "avg_calories",
    "avg_proteins",
    "avg_carbs",
    "avg_fats",
    "avg_fiber",
    "avg_water",
    "avg_weight",
)

ROLLUP_PERIODS = ("week", "month")

INSIGHT_CALORIE_DEVIATION = 10.0
INSIGHT_PROTEIN_GRAMS = 50.0
INSIGHT_CONSISTENT_PERCENT = 80.0
INSIGHT_PARTLY_CONSISTENT_PERCENT = 60.0


def _average(values: Sequence[float]) -> float:
    return round_to(sum(values) / len(values), 1) if values else 0.0


def summarize_trends(rows: Sequence[TrendRow]) -> NutritionStats:
    """Averages and sums over trend rows; empty input gives zero stats."""
    if not rows:
        return NutritionStats()
    weights = [row.weight_kg for row in rows if row.weight_kg is not None]
    return NutritionStats(
        total_days=len(rows),
        avg_calories=_average([row.calories_consumed for row in rows]),
        avg_proteins=_average([row.proteins_consumed for row in rows]),
        avg_carbs=_average([row.carbs_consumed for row in rows]),
        avg_fats=_average([row.fats_consumed for row in rows]),
        avg_fiber=_average([row.fiber_consumed for row in rows]),
        avg_water=_average([row.water_consumed for row in rows]),
        total_calories=round_to(sum(row.calories_consumed for row in rows), 1),
        total_calories_burned=round_to(sum(row.calories_burned for row in rows), 1),
        total_meals=sum(row.meals_count for row in rows),
        total_activities=sum(row.activities_count for row in rows),
        avg_weight=_average(weights) if weights else None,
        min_weight=min(weights) if weights else None,
        max_weight=max(weights) if weights else None,
    )


def progress_point(row: TrendRow) -> ProgressPoint:
    return ProgressPoint(
        day=row.date,
        calories_consumed=row.calories_consumed,
        calories_goal=row.calories_goal,
        calories_progress=percent_of(row.calories_consumed, row.calories_goal),
        proteins_consumed=row.proteins_consumed,
        proteins_goal=row.proteins_goal,
        proteins_progress=percent_of(row.proteins_consumed, row.proteins_goal),
        carbs_consumed=row.carbs_consumed,
        carbs_goal=row.carbs_goal,
        carbs_progress=percent_of(row.carbs_consumed, row.carbs_goal),
        fats_consumed=row.fats_consumed,
        fats_goal=row.fats_goal,
        fats_progress=percent_of(row.fats_consumed, row.fats_goal),
    )


def is_success_day(row: TrendRow, tolerance: float = DEFAULT_SUCCESS_TOLERANCE) -> bool:
    """A day succeeds when consumed calories are within tolerance of the goal."""
    if row.calories_goal <= 0:
        return False
    deviation = abs(row.calories_consumed - row.calories_goal) / row.calories_goal
    return deviation <= tolerance


def compute_streaks(
    rows: Iterable[TrendRow], tolerance: float = DEFAULT_SUCCESS_TOLERANCE
) -> Streaks:
    """Current and best runs of consecutive success days.

    The current run starts at the most recent row. A missing calendar day
    between two rows ends a run.
    """
    running = best = current = 0
    in_current_run = True
    previous: date | None = None
    for row in sorted(rows, key=lambda item: item.date, reverse=True):
        if previous is not None and (previous - row.date).days != 1:
            running = 0
            in_current_run = False
        if is_success_day(row, tolerance):
            running += 1
            best = max(best, running)
            if in_current_run:
                current = running
        else:
            running = 0
            in_current_run = False
        previous = row.date
    return Streaks(current=current, best=best)


def partition_range(start: date, end: date, period: str) -> list[tuple[date, date]]:
    """Split an inclusive range into ISO weeks or calendar months, clipped to it."""
    if period not in ROLLUP_PERIODS:
        raise ValidationError(f"Invalid rollup period: {period}", field="period")
    partitions = []
    cursor = start
    while cursor <= end:
        if period == "week":
            boundary = cursor + timedelta(days=6 - cursor.weekday())
        else:
            last_day = calendar.monthrange(cursor.year, cursor.month)[1]
            boundary = cursor.replace(day=last_day)
        partition_end = min(boundary, end)
        partitions.append((cursor, partition_end))
        cursor = partition_end + timedelta(days=1)
    return partitions


def success_rate(rows: Sequence[TrendRow], tolerance: float) -> tuple[int, float]:
    """Number of success days and their share of the rows in percent."""
    successes = sum(1 for row in rows if is_success_day(row, tolerance))
    rate = round_to(successes / len(rows) * 100, 1) if rows else 0.0
    return successes, rate


def compare_stats(a: NutritionStats, b: NutritionStats) -> dict[str, MetricChange]:
    """Per-metric change of `a` relative to `b`; missing values count as zero."""
    comparison = {}
    for metric in COMPARED_METRICS:
        value_a = getattr(a, metric) or 0.0
        value_b = getattr(b, metric) or 0.0
        change = value_a - value_b
        comparison[metric] = MetricChange(
            period_a=value_a,
            period_b=value_b,
            change=round_to(change, 1),
            percent_change=round_to(change / value_b * 100, 1) if value_b else 0.0,
        )
    return comparison


def _calorie_insight(rows: Sequence[TrendRow], avg_calories: float) -> Insight:
    goals = [row.calories_goal for row in rows if row.calories_goal > 0]
    avg_goal = _average(goals)
    if not avg_goal:
        return Insight(
            kind="calories",
            title="Calorie intake",
            level="info",
            message=f"Average intake is {avg_calories:g} kcal per day",
            value=avg_calories,
        )
    deviation = round_to((avg_calories - avg_goal) / avg_goal * 100, 1)
    if abs(deviation) <= INSIGHT_CALORIE_DEVIATION:
        level, message = "success", "Average intake is close to the calorie goal"
    elif deviation > 0:
        level, message = "warning", f"Average intake is {deviation:g}% above the calorie goal"
    else:
        level, message = "info", f"Average intake is {-deviation:g}% below the calorie goal"
    return Insight(
        kind="calories", title="Calorie intake", level=level, message=message, value=deviation
    )


def build_insights(rows: Sequence[TrendRow], days: int) -> list[Insight]:
    """Observations on calorie deviation, protein level and tracking consistency.

    Consistency is the share of the `days` window with calories logged.
    """
    stats = summarize_trends(rows)
    insights = []
    if stats.avg_calories > 0:
        insights.append(_calorie_insight(rows, stats.avg_calories))
    if stats.avg_proteins > 0:
        enough = stats.avg_proteins >= INSIGHT_PROTEIN_GRAMS
        insights.append(
            Insight(
                kind="protein",
                title="Protein intake",
                level="success" if enough else "warning",
                message=(
                    f"Average protein is {stats.avg_proteins:g} g per day"
                    if enough
                    else f"Average protein is only {stats.avg_proteins:g} g per day"
                ),
                value=stats.avg_proteins,
            )
        )
    tracked = sum(1 for row in rows if row.calories_consumed > 0)
    consistency = round_to(tracked / days * 100, 1) if days else 0.0
    if consistency >= INSIGHT_CONSISTENT_PERCENT:
        level = "success"
    elif consistency >= INSIGHT_PARTLY_CONSISTENT_PERCENT:
        level = "info"
    else:
        level = "warning"
    insights.append(
        Insight(
            kind="consistency",
            title="Tracking consistency",
            level=level,
            message=f"Meals logged on {tracked} of {days} days",
            value=consistency,
        )
    )
    return insights


@dataclass
class AnalyticsService:
    """Read-only analytics over a user's trend rows."""

    trends: TrendRepository
    success_tolerance: float = DEFAULT_SUCCESS_TOLERANCE
    dashboard_days: int = 30
    recent_progress_days: int = 7

    def get_stats(self, user_id: UUID, date_from: date, date_to: date) -> NutritionStats:
        return summarize_trends(self._rows(user_id, date_from, date_to))

    def get_goal_progress_series(
        self, user_id: UUID, date_from: date, date_to: date
    ) -> list[ProgressPoint]:
        """Per-day percent of goal, for days that have a calorie goal."""
        return [
            progress_point(row)
            for row in self._rows(user_id, date_from, date_to)
            if row.calories_goal > 0
        ]

    def get_streaks(self, user_id: UUID, date_from: date, date_to: date) -> Streaks:
        return compute_streaks(
            self._rows(user_id, date_from, date_to), self.success_tolerance
        )

    def get_rollup(
        self, user_id: UUID, date_from: date, date_to: date, period: str
    ) -> RollupReport:
        """Stats, streaks and success rate per week or month of a range."""
        if date_from > date_to:
            raise ValidationError("date_from must not be after date_to", field="date_from")
        partitions = partition_range(date_from, date_to, period)
        rows = self._rows(user_id, date_from, date_to)
        reports = [
            self._period_report(
                [row for row in rows if start <= row.date <= end], start, end
            )
            for start, end in partitions
        ]
        successes, rate = success_rate(rows, self.success_tolerance)
        _logger.debug(
            "Rollup user_id=%s period=%s partitions=%s rows=%s",
            user_id,
            period,
            len(reports),
            len(rows),
        )
        return RollupReport(
            period=period,
            start=date_from,
            end=date_to,
            summary=summarize_trends(rows),
            streaks=compute_streaks(rows, self.success_tolerance),
            success_days=successes,
            success_rate=rate,
            partitions=reports,
        )

    def get_weekly_report(self, user_id: UUID, week_start: date) -> RollupReport:
        """Report for the ISO week containing `week_start`."""
        monday = week_start - timedelta(days=week_start.weekday())
        return self.get_rollup(user_id, monday, monday + timedelta(days=6), "week")

    def get_monthly_report(self, user_id: UUID, year: int, month: int) -> RollupReport:
        """Report for a calendar month, partitioned into its weeks."""
        if not 1 <= month <= 12:  # noqa: PLR2004
            raise ValidationError(f"Invalid month: {month}", field="month")
        first = date(year, month, 1)
        last = first.replace(day=calendar.monthrange(year, month)[1])
        return replace(self.get_rollup(user_id, first, last, "week"), period="month")

    def compare_periods(  # noqa: PLR0913
        self,
        user_id: UUID,
        a_from: date,
        a_to: date,
        b_from: date,
        b_to: date,
    ) -> PeriodComparison:
        """Compare averages of period A against period B."""
        report_a = self._period_report(self._rows(user_id, a_from, a_to), a_from, a_to)
        report_b = self._period_report(self._rows(user_id, b_from, b_to), b_from, b_to)
        return PeriodComparison(
            period_a=report_a,
            period_b=report_b,
            comparison=compare_stats(report_a.stats, report_b.stats),
        )

    def get_dashboard(
        self, user_id: UUID, date_to: date, days: int | None = None
    ) -> Dashboard:
        """Summary, streaks and recent goal progress of the last `days` days."""
        days, start = self._window(date_to, days)
        rows = self._rows(user_id, start, date_to)
        progress = [progress_point(row) for row in rows if row.calories_goal > 0]
        return Dashboard(
            start=start,
            end=date_to,
            days=days,
            summary=summarize_trends(rows),
            streaks=compute_streaks(rows, self.success_tolerance),
            recent_progress=progress[-self.recent_progress_days :],
            trends_count=len(rows),
        )

    def get_insights(
        self, user_id: UUID, date_to: date, days: int | None = None
    ) -> list[Insight]:
        """Insights over the last `days` days ending at `date_to`."""
        days, start = self._window(date_to, days)
        return build_insights(self._rows(user_id, start, date_to), days)

    def _window(self, date_to: date, days: int | None) -> tuple[int, date]:
        if days is None:
            days = self.dashboard_days
        if days < 1:
            raise ValidationError("days must be positive", field="days")
        return days, date_to - timedelta(days=days - 1)

    def _period_report(
        self, rows: list[TrendRow], start: date, end: date
    ) -> PeriodReport:
        successes, rate = success_rate(rows, self.success_tolerance)
        return PeriodReport(
            start=start,
            end=end,
            stats=summarize_trends(rows),
            streaks=compute_streaks(rows, self.success_tolerance),
            success_days=successes,
            success_rate=rate,
            daily_trends=rows,
        )

    def _rows(self, user_id: UUID, date_from: date, date_to: date) -> list[TrendRow]:
        if date_from > date_to:
            return []
        return self.trends.list_trends(user_id, date_from, date_to)
