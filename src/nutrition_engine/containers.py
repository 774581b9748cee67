"""Dependency container wiring for the engine."""

from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from supabase import create_client

from nutrition_engine.adapters.sqlalchemy_models import Base
from nutrition_engine.adapters.sqlalchemy_repositories import (
    SessionScope,
    SqlAlchemyGoalRepository,
    SqlAlchemyMealRepository,
    SqlAlchemyTrendRepository,
)
from nutrition_engine.adapters.supabase_product_repository import (
    SupabaseProductRepository,
)
from nutrition_engine.adapters.supabase_user_repository import SupabaseUserRepository
from nutrition_engine.app_logging import configure_logging
from nutrition_engine.config import Settings
from nutrition_engine.services.analytics import AnalyticsService
from nutrition_engine.services.goals import GoalService
from nutrition_engine.services.meals import MealService
from nutrition_engine.services.nutrition import NutritionService
from nutrition_engine.services.trends import TrendService


@dataclass
class AppContainer:
    """Holds engine-wide dependencies."""

    settings: Settings
    meal_service: MealService
    goal_service: GoalService
    trend_service: TrendService
    analytics_service: AnalyticsService
    nutrition_service: NutritionService
    close_resources: Callable[[], None]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    configure_logging(resolved_settings.log_level)
    connect_args = (
        {"check_same_thread": False}
        if resolved_settings.database_url.startswith("sqlite")
        else {}
    )
    engine = create_engine(
        resolved_settings.database_url,
        echo=resolved_settings.sql_echo,
        connect_args=connect_args,
    )
    Base.metadata.create_all(engine)
    scope = SessionScope(sessionmaker(bind=engine))
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )

    meal_repository = SqlAlchemyMealRepository(scope)
    goal_repository = SqlAlchemyGoalRepository(scope)
    trend_repository = SqlAlchemyTrendRepository(scope)
    product_repository = SupabaseProductRepository(
        supabase_client, table=resolved_settings.products_table
    )
    user_repository = SupabaseUserRepository(
        supabase_client, table=resolved_settings.users_table
    )

    trend_service = TrendService(
        repository=trend_repository,
        meals=meal_repository,
        goals=goal_repository,
    )
    meal_service = MealService(
        products=product_repository,
        repository=meal_repository,
        trends=trend_service,
    )
    goal_service = GoalService(
        repository=goal_repository,
        users=user_repository,
        calorie_policy=resolved_settings.calorie_policy(),
    )
    analytics_service = AnalyticsService(
        trends=trend_repository,
        success_tolerance=resolved_settings.success_tolerance,
        dashboard_days=resolved_settings.dashboard_days,
        recent_progress_days=resolved_settings.recent_progress_days,
    )
    nutrition_service = NutritionService(
        products=product_repository,
        meals=meal_repository,
        users=user_repository,
    )

    def close_resources() -> None:
        engine.dispose()

    return AppContainer(
        settings=resolved_settings,
        meal_service=meal_service,
        goal_service=goal_service,
        trend_service=trend_service,
        analytics_service=analytics_service,
        nutrition_service=nutrition_service,
        close_resources=close_resources,
    )
