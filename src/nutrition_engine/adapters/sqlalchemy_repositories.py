"""SQLAlchemy-backed repositories for meals, goals and trends."""

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import AbstractContextManager, contextmanager
from dataclasses import asdict, dataclass
from datetime import date
from datetime import time as time_of_day
from typing import TypeVar
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from nutrition_engine.adapters.sqlalchemy_models import (
    GoalModel,
    MealItemModel,
    MealModel,
    TrendModel,
    utc_now,
)
from nutrition_engine.domain.errors import PersistenceError
from nutrition_engine.domain.goals import GoalRecord, GoalStatus, GoalType
from nutrition_engine.domain.meals import MealItemRecord, MealRecord, MealTotals, MealType
from nutrition_engine.domain.nutrients import NutrientValues
from nutrition_engine.domain.trends import TREND_VALUE_DEFAULTS, TrendRow
from nutrition_engine.services.goals import GoalRepository
from nutrition_engine.services.meals import MealRepository
from nutrition_engine.services.trends import TrendRepository

T = TypeVar("T")

_logger = logging.getLogger(__name__)

# Meal field name -> mapped attribute.
_MEAL_ATTRIBUTES = {
    "meal_type": "meal_type",
    "date": "day",
    "time": "time_of_day",
    "name": "name",
    "location": "location",
    "notes": "notes",
}

_UPSERT_DIALECTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class SessionScope:
    """The open transaction shared by repositories of one session factory.

    Outside a transaction every repository call opens and commits its own
    session. While `run_atomic` runs on any repository of the scope, calls on
    all of its repositories join that session and commit or roll back with it.
    The open session is tracked per thread.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory
        self._local = threading.local()

    @property
    def session(self) -> Session | None:
        return getattr(self._local, "session", None)

    @contextmanager
    def transaction(self, operation: str) -> Iterator[Session]:
        active = self.session
        if active is not None:
            yield active
            return
        try:
            with self.session_factory.begin() as session:
                self._local.session = session
                try:
                    yield session
                finally:
                    self._local.session = None
        except SQLAlchemyError as exc:
            _logger.warning("Transaction rolled back: operation=%s error=%s", operation, exc)
            raise PersistenceError(
                f"Persistence failure during {operation}", operation=operation
            ) from exc


@dataclass
class _SqlAlchemyRepository:
    """Session handling shared by the repositories."""

    scope: SessionScope

    @property
    def session(self) -> Session | None:
        return self.scope.session

    def run_atomic(self, fn: Callable[..., T]) -> T:
        with self.scope.transaction("run_atomic"):
            return fn(self)

    def _transaction(self, operation: str) -> AbstractContextManager[Session]:
        return self.scope.transaction(operation)


@dataclass
class SqlAlchemyMealRepository(_SqlAlchemyRepository, MealRepository):
    """Meals and meal items stored in SQL tables."""

    def create_meal(  # noqa: PLR0913
        self,
        user_id: UUID,
        day: date,
        meal_type: MealType,
        *,
        time: time_of_day | None,
        name: str | None,
        location: str | None,
        notes: str | None,
    ) -> UUID:
        with self._transaction("create_meal") as session:
            row = MealModel(
                user_id=user_id,
                meal_type=MealType(meal_type).value,
                day=day,
                time_of_day=time,
                name=name,
                location=location,
                notes=notes,
            )
            session.add(row)
            session.flush()
            return row.id

    def get_meal(self, meal_id: UUID) -> MealRecord | None:
        with self._transaction("get_meal") as session:
            row = session.get(MealModel, meal_id)
            if row is None:
                return None
            return _to_meal(row, self._items(session, [meal_id]).get(meal_id, []))

    def list_meals(
        self, user_id: UUID, date_from: date, date_to: date
    ) -> list[MealRecord]:
        with self._transaction("list_meals") as session:
            rows = session.scalars(
                select(MealModel)
                .where(
                    MealModel.user_id == user_id,
                    MealModel.day >= date_from,
                    MealModel.day <= date_to,
                )
                .order_by(MealModel.day, MealModel.time_of_day, MealModel.created_at)
            ).all()
            items = self._items(session, [row.id for row in rows])
            return [_to_meal(row, items.get(row.id, [])) for row in rows]

    def update_meal(self, meal_id: UUID, changes: dict[str, object]) -> None:
        with self._transaction("update_meal") as session:
            row = session.get(MealModel, meal_id)
            if row is None:
                return
            for name, value in changes.items():
                setattr(row, _MEAL_ATTRIBUTES[name], value)

    def update_totals(self, meal_id: UUID, totals: MealTotals) -> None:
        with self._transaction("update_totals") as session:
            session.execute(
                update(MealModel)
                .where(MealModel.id == meal_id)
                .values(**asdict(totals), updated_at=utc_now())
            )

    def delete_meal(self, meal_id: UUID) -> None:
        with self._transaction("delete_meal") as session:
            session.execute(delete(MealModel).where(MealModel.id == meal_id))

    def create_item(
        self,
        meal_id: UUID,
        product_id: UUID,
        quantity: float,
        unit: str,
        nutrients: NutrientValues,
    ) -> UUID:
        with self._transaction("create_item") as session:
            row = MealItemModel(
                meal_id=meal_id,
                product_id=product_id,
                quantity=quantity,
                unit=unit,
                nutrients=dict(nutrients),
            )
            session.add(row)
            session.flush()
            return row.id

    def get_item(self, meal_id: UUID, item_id: UUID) -> MealItemRecord | None:
        with self._transaction("get_item") as session:
            row = session.scalars(
                select(MealItemModel).where(
                    MealItemModel.id == item_id, MealItemModel.meal_id == meal_id
                )
            ).first()
            return _to_item(row) if row is not None else None

    def list_items(self, meal_id: UUID) -> list[MealItemRecord]:
        with self._transaction("list_items") as session:
            return self._items(session, [meal_id]).get(meal_id, [])

    def update_item(
        self, item_id: UUID, quantity: float, nutrients: NutrientValues
    ) -> None:
        with self._transaction("update_item") as session:
            session.execute(
                update(MealItemModel)
                .where(MealItemModel.id == item_id)
                .values(quantity=quantity, nutrients=dict(nutrients))
            )

    def delete_item(self, item_id: UUID) -> None:
        with self._transaction("delete_item") as session:
            session.execute(delete(MealItemModel).where(MealItemModel.id == item_id))

    def delete_items(self, meal_id: UUID) -> None:
        with self._transaction("delete_items") as session:
            session.execute(delete(MealItemModel).where(MealItemModel.meal_id == meal_id))

    @staticmethod
    def _items(session: Session, meal_ids: list[UUID]) -> dict[UUID, list[MealItemRecord]]:
        if not meal_ids:
            return {}
        rows = session.scalars(
            select(MealItemModel)
            .where(MealItemModel.meal_id.in_(meal_ids))
            .order_by(MealItemModel.created_at, MealItemModel.id)
        ).all()
        grouped: dict[UUID, list[MealItemRecord]] = {}
        for row in rows:
            grouped.setdefault(row.meal_id, []).append(_to_item(row))
        return grouped


@dataclass
class SqlAlchemyGoalRepository(_SqlAlchemyRepository, GoalRepository):
    """Nutrition goals stored in SQL tables."""

    def insert_goal(self, goal: GoalRecord) -> None:
        values = asdict(goal)
        values["goal_type"] = goal.goal_type.value
        values["status"] = goal.status.value
        values["created_at"] = goal.created_at or utc_now()
        with self._transaction("insert_goal") as session:
            session.add(GoalModel(**values))
            session.flush()

    def get_goal(self, goal_id: UUID) -> GoalRecord | None:
        with self._transaction("get_goal") as session:
            row = session.get(GoalModel, goal_id)
            return _to_goal(row) if row is not None else None

    def get_active_goal(self, user_id: UUID) -> GoalRecord | None:
        with self._transaction("get_active_goal") as session:
            row = session.scalars(
                select(GoalModel)
                .where(
                    GoalModel.user_id == user_id,
                    GoalModel.status == GoalStatus.ACTIVE.value,
                )
                .order_by(GoalModel.created_at.desc())
                .limit(1)
            ).first()
            return _to_goal(row) if row is not None else None

    def list_goals(self, user_id: UUID) -> list[GoalRecord]:
        with self._transaction("list_goals") as session:
            rows = session.scalars(
                select(GoalModel)
                .where(GoalModel.user_id == user_id)
                .order_by(GoalModel.created_at.desc())
            ).all()
            return [_to_goal(row) for row in rows]

    def set_status(self, goal_id: UUID, status: GoalStatus) -> None:
        with self._transaction("set_status") as session:
            session.execute(
                update(GoalModel)
                .where(GoalModel.id == goal_id)
                .values(status=GoalStatus(status).value)
            )

    def supersede_active_goals(
        self, user_id: UUID, except_goal_id: UUID | None = None
    ) -> int:
        statement = update(GoalModel).where(
            GoalModel.user_id == user_id,
            GoalModel.status == GoalStatus.ACTIVE.value,
        )
        if except_goal_id is not None:
            statement = statement.where(GoalModel.id != except_goal_id)
        with self._transaction("supersede_active_goals") as session:
            result = session.execute(
                statement.values(status=GoalStatus.SUPERSEDED.value)
            )
            return result.rowcount

    def update_goal(self, goal_id: UUID, changes: dict[str, object]) -> None:
        with self._transaction("update_goal") as session:
            session.execute(
                update(GoalModel).where(GoalModel.id == goal_id).values(**changes)
            )


@dataclass
class SqlAlchemyTrendRepository(_SqlAlchemyRepository, TrendRepository):
    """Daily trend rows with a single-statement upsert."""

    def upsert(
        self, user_id: UUID, day: date, values: Mapping[str, float | int | None]
    ) -> TrendRow:
        with self._transaction("upsert_trend") as session:
            dialect = session.get_bind().dialect.name
            insert = _UPSERT_DIALECTS.get(dialect)
            if insert is None:
                raise PersistenceError(
                    f"Trend upsert is not supported on {dialect}", operation="upsert_trend"
                )
            now = utc_now()
            statement = insert(TrendModel.__table__).values(
                {
                    "user_id": user_id,
                    "date": day,
                    "updated_at": now,
                    **TREND_VALUE_DEFAULTS,
                    **values,
                }
            )
            conflict_columns = ["user_id", "date"]
            if values:
                statement = statement.on_conflict_do_update(
                    index_elements=conflict_columns,
                    set_={**values, "updated_at": now},
                )
            else:
                statement = statement.on_conflict_do_nothing(
                    index_elements=conflict_columns
                )
            session.execute(statement)
            row = session.scalars(
                select(TrendModel)
                .where(TrendModel.user_id == user_id, TrendModel.day == day)
                .execution_options(populate_existing=True)
            ).one()
            return _to_trend(row)

    def get_trend(self, user_id: UUID, day: date) -> TrendRow | None:
        with self._transaction("get_trend") as session:
            row = session.scalars(
                select(TrendModel).where(
                    TrendModel.user_id == user_id, TrendModel.day == day
                )
            ).first()
            return _to_trend(row) if row is not None else None

    def list_trends(
        self, user_id: UUID, date_from: date, date_to: date
    ) -> list[TrendRow]:
        with self._transaction("list_trends") as session:
            rows = session.scalars(
                select(TrendModel)
                .where(
                    TrendModel.user_id == user_id,
                    TrendModel.day >= date_from,
                    TrendModel.day <= date_to,
                )
                .order_by(TrendModel.day)
            ).all()
            return [_to_trend(row) for row in rows]


def _to_item(row: MealItemModel) -> MealItemRecord:
    return MealItemRecord(
        id=row.id,
        meal_id=row.meal_id,
        product_id=row.product_id,
        quantity=row.quantity,
        unit=row.unit,
        nutrients=dict(row.nutrients or {}),
        created_at=row.created_at,
    )


def _to_meal(row: MealModel, items: list[MealItemRecord]) -> MealRecord:
    return MealRecord(
        id=row.id,
        user_id=row.user_id,
        meal_type=MealType(row.meal_type),
        date=row.day,
        totals=MealTotals(
            total_calories=row.total_calories,
            total_proteins=row.total_proteins,
            total_carbs=row.total_carbs,
            total_fats=row.total_fats,
            total_fiber=row.total_fiber,
        ),
        items=items,
        time=row.time_of_day,
        name=row.name,
        location=row.location,
        notes=row.notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_goal(row: GoalModel) -> GoalRecord:
    return GoalRecord(
        id=row.id,
        user_id=row.user_id,
        goal_type=GoalType(row.goal_type),
        status=GoalStatus(row.status),
        target_calories=row.target_calories,
        carbs_percent=row.carbs_percent,
        protein_percent=row.protein_percent,
        fat_percent=row.fat_percent,
        weekly_weight_change=row.weekly_weight_change,
        start_date=row.start_date,
        target_weight=row.target_weight,
        target_water_liters=row.target_water_liters,
        target_date=row.target_date,
        bmr=row.bmr,
        tdee=row.tdee,
        created_at=row.created_at,
    )


def _to_trend(row: TrendModel) -> TrendRow:
    return TrendRow(
        user_id=row.user_id,
        date=row.day,
        calories_consumed=row.calories_consumed,
        calories_goal=row.calories_goal,
        calories_burned=row.calories_burned,
        proteins_consumed=row.proteins_consumed,
        proteins_goal=row.proteins_goal,
        carbs_consumed=row.carbs_consumed,
        carbs_goal=row.carbs_goal,
        fats_consumed=row.fats_consumed,
        fats_goal=row.fats_goal,
        fiber_consumed=row.fiber_consumed,
        water_consumed=row.water_consumed,
        meals_count=row.meals_count,
        activities_count=row.activities_count,
        weight_kg=row.weight_kg,
        updated_at=row.updated_at,
    )
