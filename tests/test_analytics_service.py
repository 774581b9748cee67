"""Tests for the analytics engine."""

from datetime import date, timedelta
from uuid import UUID, uuid4

import pytest

from nutrition_engine.domain.analytics import NutritionStats, Streaks
from nutrition_engine.domain.errors import ValidationError
from nutrition_engine.domain.trends import TrendRow
from nutrition_engine.services.analytics import (
    AnalyticsService,
    compute_streaks,
    is_success_day,
    partition_range,
    summarize_trends,
)

SUCCESS = {"calories_consumed": 2000.0, "calories_goal": 2000.0}
FAIL = {"calories_consumed": 2600.0, "calories_goal": 2000.0}


def _row(day: date, user_id: UUID | None = None, **values: object) -> TrendRow:
    return TrendRow(user_id=user_id or uuid4(), date=day, **values)


def _days_most_recent_first(flags: list[bool], latest: date) -> list[TrendRow]:
    return [
        _row(latest - timedelta(days=offset), **(SUCCESS if ok else FAIL))
        for offset, ok in enumerate(flags)
    ]


def test_streaks_current_run_from_most_recent_day() -> None:
    rows = _days_most_recent_first([True, True, False, True], date(2024, 3, 10))

    assert compute_streaks(rows) == Streaks(current=2, best=2)


def test_streaks_failed_latest_day_resets_current() -> None:
    rows = _days_most_recent_first([False, True, True, True], date(2024, 3, 10))

    assert compute_streaks(rows) == Streaks(current=0, best=3)


def test_streaks_order_of_input_does_not_matter() -> None:
    rows = _days_most_recent_first([True, True, False, True, True, True], date(2024, 3, 10))

    assert compute_streaks(reversed(rows)) == Streaks(current=2, best=3)


def test_streaks_break_on_missing_day() -> None:
    rows = [
        _row(date(2024, 3, 10), **SUCCESS),
        _row(date(2024, 3, 9), **SUCCESS),
        _row(date(2024, 3, 7), **SUCCESS),
        _row(date(2024, 3, 6), **SUCCESS),
        _row(date(2024, 3, 5), **SUCCESS),
    ]

    assert compute_streaks(rows) == Streaks(current=2, best=3)


def test_streaks_of_no_rows() -> None:
    assert compute_streaks([]) == Streaks(current=0, best=0)


def test_success_day_tolerance_band() -> None:
    day = date(2024, 3, 1)

    assert is_success_day(_row(day, calories_consumed=2200.0, calories_goal=2000.0))
    assert is_success_day(_row(day, calories_consumed=1800.0, calories_goal=2000.0))
    assert not is_success_day(_row(day, calories_consumed=2201.0, calories_goal=2000.0))
    assert not is_success_day(_row(day, calories_consumed=0.0, calories_goal=0.0))
    assert is_success_day(
        _row(day, calories_consumed=2300.0, calories_goal=2000.0), tolerance=0.2
    )


def test_summarize_empty_range() -> None:
    stats = summarize_trends([])

    assert stats == NutritionStats()
    assert stats.avg_weight is None


def test_summarize_trends_averages_and_sums() -> None:
    rows = [
        _row(date(2024, 3, 1), calories_consumed=1800.0, proteins_consumed=90.0,
             calories_burned=300.0, meals_count=3, activities_count=1, weight_kg=80.2),
        _row(date(2024, 3, 2), calories_consumed=2100.0, proteins_consumed=110.0,
             meals_count=4, water_consumed=2.5),
        _row(date(2024, 3, 3), calories_consumed=1950.0, proteins_consumed=100.0,
             calories_burned=150.0, meals_count=3, activities_count=2, weight_kg=79.6),
    ]

    stats = summarize_trends(rows)

    assert stats.total_days == 3
    assert stats.avg_calories == 1950.0
    assert stats.avg_proteins == 100.0
    assert stats.avg_water == 0.8
    assert stats.total_calories == 5850.0
    assert stats.total_calories_burned == 450.0
    assert stats.total_meals == 10
    assert stats.total_activities == 3
    assert stats.avg_weight == 79.9
    assert (stats.min_weight, stats.max_weight) == (79.6, 80.2)


def test_goal_progress_series_skips_days_without_goal(
    analytics_service: AnalyticsService, trend_repository
) -> None:  # type: ignore[no-untyped-def]
    user_id = uuid4()
    trend_repository.add_day(user_id, date(2024, 3, 1), calories_consumed=1500.0)
    trend_repository.add_day(
        user_id,
        date(2024, 3, 2),
        calories_consumed=1500.0,
        calories_goal=2000.0,
        proteins_consumed=80.0,
        proteins_goal=100.0,
        carbs_consumed=120.0,
        fats_consumed=50.0,
        fats_goal=67.0,
    )

    series = analytics_service.get_goal_progress_series(
        user_id, date(2024, 3, 1), date(2024, 3, 31)
    )

    assert [point.day for point in series] == [date(2024, 3, 2)]
    point = series[0]
    assert point.calories_progress == 75.0
    assert point.proteins_progress == 80.0
    assert point.carbs_progress is None
    assert point.fats_progress == 74.6


def test_partition_range_by_iso_week() -> None:
    assert partition_range(date(2024, 3, 6), date(2024, 3, 17), "week") == [
        (date(2024, 3, 6), date(2024, 3, 10)),
        (date(2024, 3, 11), date(2024, 3, 17)),
    ]


def test_partition_range_by_month() -> None:
    assert partition_range(date(2024, 1, 20), date(2024, 3, 5), "month") == [
        (date(2024, 1, 20), date(2024, 1, 31)),
        (date(2024, 2, 1), date(2024, 2, 29)),
        (date(2024, 3, 1), date(2024, 3, 5)),
    ]


def test_partition_range_rejects_unknown_period() -> None:
    with pytest.raises(ValidationError) as excinfo:
        partition_range(date(2024, 3, 1), date(2024, 3, 5), "quarter")

    assert excinfo.value.field == "period"


def test_rollup_reports_success_rate_per_partition(
    analytics_service: AnalyticsService, trend_repository
) -> None:  # type: ignore[no-untyped-def]
    user_id = uuid4()
    for offset, ok in enumerate([True, True, False, True, True, True, True]):
        trend_repository.add_day(
            user_id, date(2024, 3, 7) + timedelta(days=offset), **(SUCCESS if ok else FAIL)
        )

    report = analytics_service.get_rollup(user_id, date(2024, 3, 7), date(2024, 3, 13), "week")

    assert report.period == "week"
    assert report.summary.total_days == 7
    assert report.success_days == 6
    assert report.success_rate == 85.7
    assert report.streaks == Streaks(current=4, best=4)
    first, second = report.partitions
    assert (first.start, first.end) == (date(2024, 3, 7), date(2024, 3, 10))
    assert (first.success_days, first.success_rate) == (3, 75.0)
    assert (second.start, second.end) == (date(2024, 3, 11), date(2024, 3, 13))
    assert second.success_rate == 100.0
    assert len(second.daily_trends) == 3


def test_rollup_without_rows_has_zero_rate(analytics_service: AnalyticsService) -> None:
    report = analytics_service.get_rollup(uuid4(), date(2024, 3, 1), date(2024, 3, 31), "month")

    assert report.success_rate == 0.0
    assert report.summary == NutritionStats()
    assert len(report.partitions) == 1


def test_rollup_rejects_reversed_range(analytics_service: AnalyticsService) -> None:
    with pytest.raises(ValidationError):
        analytics_service.get_rollup(uuid4(), date(2024, 3, 5), date(2024, 3, 1), "week")


def test_weekly_report_covers_iso_week(analytics_service: AnalyticsService) -> None:
    report = analytics_service.get_weekly_report(uuid4(), date(2024, 3, 6))

    assert (report.start, report.end) == (date(2024, 3, 4), date(2024, 3, 10))
    assert len(report.partitions) == 1


def test_monthly_report_has_weekly_partitions(analytics_service: AnalyticsService) -> None:
    report = analytics_service.get_monthly_report(uuid4(), 2024, 2)

    assert report.period == "month"
    assert (report.start, report.end) == (date(2024, 2, 1), date(2024, 2, 29))
    assert [partition.start.day for partition in report.partitions] == [1, 5, 12, 19, 26]
    assert report.partitions[-1].end == date(2024, 2, 29)


def test_monthly_report_rejects_invalid_month(analytics_service: AnalyticsService) -> None:
    with pytest.raises(ValidationError):
        analytics_service.get_monthly_report(uuid4(), 2024, 13)


def test_compare_periods(analytics_service: AnalyticsService, trend_repository) -> None:  # type: ignore[no-untyped-def]
    user_id = uuid4()
    trend_repository.add_day(user_id, date(2024, 3, 8), calories_consumed=2000.0, weight_kg=79.0)
    trend_repository.add_day(user_id, date(2024, 3, 9), calories_consumed=2000.0)
    trend_repository.add_day(user_id, date(2024, 3, 1), calories_consumed=1600.0)

    result = analytics_service.compare_periods(
        user_id, date(2024, 3, 8), date(2024, 3, 14), date(2024, 3, 1), date(2024, 3, 7)
    )

    calories = result.comparison["avg_calories"]
    assert (calories.period_a, calories.period_b) == (2000.0, 1600.0)
    assert calories.change == 400.0
    assert calories.percent_change == 25.0
    weight = result.comparison["avg_weight"]
    assert (weight.period_a, weight.period_b) == (79.0, 0.0)
    assert weight.percent_change == 0.0
    assert result.period_a.stats.total_days == 2
    assert set(result.comparison) == {
        "avg_calories",
        "avg_proteins",
        "avg_carbs",
        "avg_fats",
        "avg_fiber",
        "avg_water",
        "avg_weight",
    }


def test_dashboard_summarizes_recent_days(
    analytics_service: AnalyticsService, trend_repository
) -> None:  # type: ignore[no-untyped-def]
    user_id = uuid4()
    end = date(2024, 3, 31)
    for offset in range(10):
        trend_repository.add_day(user_id, end - timedelta(days=offset), **SUCCESS)
    trend_repository.add_day(user_id, end - timedelta(days=40), **SUCCESS)

    dashboard = analytics_service.get_dashboard(user_id, end)

    assert dashboard.days == 30
    assert dashboard.start == date(2024, 3, 2)
    assert dashboard.trends_count == 10
    assert dashboard.streaks == Streaks(current=10, best=10)
    assert len(dashboard.recent_progress) == 7
    assert dashboard.recent_progress[-1].day == end
    assert dashboard.summary.avg_calories == 2000.0


@pytest.mark.parametrize("days", [0, -3])
def test_dashboard_rejects_non_positive_days(
    analytics_service: AnalyticsService, days: int
) -> None:
    with pytest.raises(ValidationError) as excinfo:
        analytics_service.get_dashboard(uuid4(), date(2024, 3, 31), days=days)

    assert excinfo.value.field == "days"


def test_insights_flag_overeating_and_low_protein(
    analytics_service: AnalyticsService, trend_repository
) -> None:  # type: ignore[no-untyped-def]
    user_id = uuid4()
    end = date(2024, 3, 10)
    for offset in range(9):
        trend_repository.add_day(
            user_id,
            end - timedelta(days=offset),
            calories_consumed=2300.0,
            calories_goal=2000.0,
            proteins_consumed=40.0,
        )

    insights = analytics_service.get_insights(user_id, end, days=10)

    assert [(i.kind, i.level, i.value) for i in insights] == [
        ("calories", "warning", 15.0),
        ("protein", "warning", 40.0),
        ("consistency", "success", 90.0),
    ]
    assert insights[2].message == "Meals logged on 9 of 10 days"


def test_insights_for_intake_near_goal(
    analytics_service: AnalyticsService, trend_repository
) -> None:  # type: ignore[no-untyped-def]
    user_id = uuid4()
    end = date(2024, 3, 10)
    for offset in range(6):
        trend_repository.add_day(
            user_id,
            end - timedelta(days=offset),
            calories_consumed=1900.0,
            calories_goal=2000.0,
            proteins_consumed=80.0,
        )

    insights = analytics_service.get_insights(user_id, end, days=10)

    assert [(i.kind, i.level) for i in insights] == [
        ("calories", "success"),
        ("protein", "success"),
        ("consistency", "info"),
    ]
    assert insights[0].value == -5.0


def test_insights_for_undereating_and_sparse_tracking(
    analytics_service: AnalyticsService, trend_repository
) -> None:  # type: ignore[no-untyped-def]
    user_id = uuid4()
    end = date(2024, 3, 10)
    for offset in range(3):
        trend_repository.add_day(
            user_id,
            end - timedelta(days=offset),
            calories_consumed=1600.0,
            calories_goal=2000.0,
        )

    insights = analytics_service.get_insights(user_id, end, days=10)

    assert [(i.kind, i.level, i.value) for i in insights] == [
        ("calories", "info", -20.0),
        ("consistency", "warning", 30.0),
    ]


def test_insights_without_goal_or_rows(
    analytics_service: AnalyticsService, trend_repository
) -> None:  # type: ignore[no-untyped-def]
    user_id = uuid4()
    end = date(2024, 3, 10)
    trend_repository.add_day(user_id, end, calories_consumed=1800.0)

    insights = analytics_service.get_insights(user_id, end, days=1)
    empty = analytics_service.get_insights(uuid4(), end)

    assert [(i.kind, i.level, i.value) for i in insights] == [
        ("calories", "info", 1800.0),
        ("consistency", "success", 100.0),
    ]
    assert [(i.kind, i.level, i.value) for i in empty] == [("consistency", "warning", 0.0)]
    assert empty[0].message == "Meals logged on 0 of 30 days"


def test_insights_reject_non_positive_days(analytics_service: AnalyticsService) -> None:
    with pytest.raises(ValidationError) as excinfo:
        analytics_service.get_insights(uuid4(), date(2024, 3, 31), days=0)

    assert excinfo.value.field == "days"
