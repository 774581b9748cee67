"""Engine configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

from nutrition_engine.services.goals import CaloriePolicy

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    database_url: str = "sqlite:///nutrition.db"
    sql_echo: bool = False
    log_level: str = "INFO"
    supabase_url: str
    supabase_service_key: str
    products_table: str = "products"
    users_table: str = "users"
    success_tolerance: float = 0.10
    dashboard_days: int = 30
    recent_progress_days: int = 7
    calorie_floor_generic: int = 1200
    calorie_floor_male: int = 1500
    calorie_floor_mode: str = "none"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    def calorie_policy(self) -> CaloriePolicy:
        """Build the calorie floor policy from settings."""
        return CaloriePolicy(
            generic_floor=self.calorie_floor_generic,
            male_floor=self.calorie_floor_male,
            mode=self.calorie_floor_mode,
        )
