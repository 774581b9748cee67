"""SQLAlchemy 2.0 tables for meals, goals and daily trends."""

import uuid
from datetime import UTC, date, datetime, time

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class MealModel(Base):
    """A logged meal with materialized totals."""

    __tablename__ = "meals"
    __table_args__ = (Index("ix_meals_user_date", "user_id", "date"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    meal_type: Mapped[str] = mapped_column(String(16), nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    time_of_day: Mapped[time | None] = mapped_column("time", Time, nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_calories: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_proteins: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_carbs: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_fats: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_fiber: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


class MealItemModel(Base):
    """A product portion inside a meal with its scaled nutrient snapshot."""

    __tablename__ = "meal_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    meal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("meals.id", ondelete="CASCADE"), index=True, nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(16), default="g", nullable=False)
    nutrients: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class GoalModel(Base):
    """A nutrition goal with its lifecycle state."""

    __tablename__ = "nutrition_goals"
    __table_args__ = (Index("ix_goals_user_status", "user_id", "status"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    goal_type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    target_calories: Mapped[int] = mapped_column(Integer, nullable=False)
    carbs_percent: Mapped[float] = mapped_column(Float, nullable=False)
    protein_percent: Mapped[float] = mapped_column(Float, nullable=False)
    fat_percent: Mapped[float] = mapped_column(Float, nullable=False)
    weekly_weight_change: Mapped[float] = mapped_column(Float, default=0.0)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    target_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    target_water_liters: Mapped[float | None] = mapped_column(Float, nullable=True)
    target_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    bmr: Mapped[float | None] = mapped_column(Float, nullable=True)
    tdee: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class TrendModel(Base):
    """One aggregate row per user per day."""

    __tablename__ = "nutrition_trends"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_trend_user_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    calories_consumed: Mapped[float] = mapped_column(Float, default=0.0)
    calories_goal: Mapped[float] = mapped_column(Float, default=0.0)
    calories_burned: Mapped[float] = mapped_column(Float, default=0.0)
    proteins_consumed: Mapped[float] = mapped_column(Float, default=0.0)
    proteins_goal: Mapped[float] = mapped_column(Float, default=0.0)
    carbs_consumed: Mapped[float] = mapped_column(Float, default=0.0)
    carbs_goal: Mapped[float] = mapped_column(Float, default=0.0)
    fats_consumed: Mapped[float] = mapped_column(Float, default=0.0)
    fats_goal: Mapped[float] = mapped_column(Float, default=0.0)
    fiber_consumed: Mapped[float] = mapped_column(Float, default=0.0)
    water_consumed: Mapped[float] = mapped_column(Float, default=0.0)
    meals_count: Mapped[int] = mapped_column(Integer, default=0)
    activities_count: Mapped[int] = mapped_column(Integer, default=0)
    weight_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
