"""Shared test fixtures."""

from collections.abc import Callable
from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import date
from typing import TypeVar
from uuid import UUID, uuid4

import pytest

from nutrition_engine.config import Settings
from nutrition_engine.domain.errors import PersistenceError
from nutrition_engine.domain.goals import GoalRecord, GoalStatus, UserBiometrics
from nutrition_engine.domain.meals import MealItemRecord, MealRecord, MealTotals
from nutrition_engine.domain.nutrients import NutrientValues, ProductProfile
from nutrition_engine.domain.trends import TREND_VALUE_DEFAULTS, TrendRow
from nutrition_engine.services.analytics import AnalyticsService
from nutrition_engine.services.goals import GoalRepository, GoalService, UserRepository
from nutrition_engine.services.meals import (
    MealRepository,
    MealService,
    ProductRepository,
)
from nutrition_engine.services.nutrition import NutritionService
from nutrition_engine.services.trends import TrendRepository, TrendService

T = TypeVar("T")

OATS_ID = UUID("00000000-0000-0000-0000-000000000001")
CHICKEN_ID = UUID("00000000-0000-0000-0000-000000000002")
BANANA_ID = UUID("00000000-0000-0000-0000-000000000003")

TEST_SUPABASE_KEY = (
    "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9."
    "eyJyb2xlIjoic2VydmljZV9yb2xlIn0."
    "c2lnbmF0dXJl"
)


class FakeStorageError(Exception):
    """Raised by in-memory repositories to simulate a failed write."""


@dataclass
class SnapshotScope:
    """All-or-nothing transaction over every in-memory repository of the scope."""

    members: list["SnapshotRepository"] = field(default_factory=list, repr=False)
    active: bool = False

    def run(self, fn: Callable[..., T], repository: "SnapshotRepository") -> T:
        if self.active:
            return fn(repository)
        snapshots = [(member, deepcopy(member._state())) for member in self.members]
        self.active = True
        try:
            return fn(repository)
        except FakeStorageError as exc:
            self._restore(snapshots)
            raise PersistenceError("Simulated storage failure", operation=str(exc)) from exc
        except Exception:
            self._restore(snapshots)
            raise
        finally:
            self.active = False

    @staticmethod
    def _restore(snapshots: list[tuple["SnapshotRepository", dict[str, object]]]) -> None:
        for member, snapshot in snapshots:
            for name, value in snapshot.items():
                setattr(member, name, value)


@dataclass
class SnapshotRepository:
    """Gives in-memory repositories `run_atomic` through a shared scope."""

    fail_on: set[str] = field(default_factory=set)
    scope: SnapshotScope = field(default_factory=SnapshotScope, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.scope.members.append(self)

    def run_atomic(self, fn: Callable[..., T]) -> T:
        return self.scope.run(fn, self)

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise FakeStorageError(operation)

    def _state(self) -> dict[str, object]:
        raise NotImplementedError


@dataclass
class InMemoryProductRepository(ProductRepository):
    """In-memory product catalog for tests."""

    products: dict[UUID, ProductProfile] = field(default_factory=dict)

    def add(self, product_id: UUID, name: str, **nutrients: float | None) -> ProductProfile:
        product = ProductProfile(id=product_id, name=name, nutrients=nutrients)
        self.products[product_id] = product
        return product

    def get_product(self, product_id: UUID) -> ProductProfile | None:
        return self.products.get(product_id)


@dataclass
class InMemoryUserRepository(UserRepository):
    """In-memory user biometrics for tests."""

    users: dict[UUID, UserBiometrics] = field(default_factory=dict)

    def add(self, **values: object) -> UserBiometrics:
        defaults: dict[str, object] = {
            "id": uuid4(),
            "weight_kg": 80.0,
            "height_cm": 180.0,
            "age": 30,
            "gender": "male",
            "activity_level": "moderate",
        }
        user = UserBiometrics(**{**defaults, **values})
        self.users[user.id] = user
        return user

    def get_user(self, user_id: UUID) -> UserBiometrics | None:
        return self.users.get(user_id)


@dataclass
class InMemoryMealRepository(SnapshotRepository, MealRepository):
    """In-memory meal repository for tests."""

    meals: dict[UUID, MealRecord] = field(default_factory=dict)
    items: dict[UUID, MealItemRecord] = field(default_factory=dict)
    totals_updates: int = 0

    def _state(self) -> dict[str, object]:
        return {"meals": self.meals, "items": self.items}

    def create_meal(  # noqa: PLR0913
        self, user_id, day, meal_type, *, time, name, location, notes
    ) -> UUID:
        self._check("create_meal")
        meal = MealRecord(
            id=uuid4(),
            user_id=user_id,
            meal_type=meal_type,
            date=day,
            totals=MealTotals(),
            time=time,
            name=name,
            location=location,
            notes=notes,
        )
        self.meals[meal.id] = meal
        return meal.id

    def get_meal(self, meal_id: UUID) -> MealRecord | None:
        meal = self.meals.get(meal_id)
        if meal is None:
            return None
        return replace(meal, items=self.list_items(meal_id))

    def list_meals(self, user_id: UUID, date_from: date, date_to: date) -> list[MealRecord]:
        return [
            replace(meal, items=self.list_items(meal.id))
            for meal in sorted(self.meals.values(), key=lambda item: item.date)
            if meal.user_id == user_id and date_from <= meal.date <= date_to
        ]

    def update_meal(self, meal_id: UUID, changes: dict[str, object]) -> None:
        self._check("update_meal")
        self.meals[meal_id] = replace(self.meals[meal_id], **changes)

    def update_totals(self, meal_id: UUID, totals: MealTotals) -> None:
        self._check("update_totals")
        self.totals_updates += 1
        self.meals[meal_id] = replace(self.meals[meal_id], totals=totals)

    def delete_meal(self, meal_id: UUID) -> None:
        self._check("delete_meal")
        self.meals.pop(meal_id, None)

    def create_item(
        self,
        meal_id: UUID,
        product_id: UUID,
        quantity: float,
        unit: str,
        nutrients: NutrientValues,
    ) -> UUID:
        self._check("create_item")
        item = MealItemRecord(
            id=uuid4(),
            meal_id=meal_id,
            product_id=product_id,
            quantity=quantity,
            unit=unit,
            nutrients=dict(nutrients),
        )
        self.items[item.id] = item
        return item.id

    def get_item(self, meal_id: UUID, item_id: UUID) -> MealItemRecord | None:
        item = self.items.get(item_id)
        if item is None or item.meal_id != meal_id:
            return None
        return item

    def list_items(self, meal_id: UUID) -> list[MealItemRecord]:
        return [item for item in self.items.values() if item.meal_id == meal_id]

    def update_item(self, item_id: UUID, quantity: float, nutrients: NutrientValues) -> None:
        self._check("update_item")
        self.items[item_id] = replace(
            self.items[item_id], quantity=quantity, nutrients=dict(nutrients)
        )

    def delete_item(self, item_id: UUID) -> None:
        self._check("delete_item")
        self.items.pop(item_id, None)

    def delete_items(self, meal_id: UUID) -> None:
        self._check("delete_items")
        for item_id in [item.id for item in self.list_items(meal_id)]:
            self.items.pop(item_id)


@dataclass
class InMemoryGoalRepository(SnapshotRepository, GoalRepository):
    """In-memory goal repository for tests."""

    goals: dict[UUID, GoalRecord] = field(default_factory=dict)

    def _state(self) -> dict[str, object]:
        return {"goals": self.goals}

    def insert_goal(self, goal: GoalRecord) -> None:
        self._check("insert_goal")
        self.goals[goal.id] = goal

    def get_goal(self, goal_id: UUID) -> GoalRecord | None:
        return self.goals.get(goal_id)

    def get_active_goal(self, user_id: UUID) -> GoalRecord | None:
        active = [goal for goal in self.list_goals(user_id) if goal.is_active]
        return active[0] if active else None

    def list_goals(self, user_id: UUID) -> list[GoalRecord]:
        return [goal for goal in reversed(self.goals.values()) if goal.user_id == user_id]

    def set_status(self, goal_id: UUID, status: GoalStatus) -> None:
        self._check("set_status")
        self.goals[goal_id] = replace(self.goals[goal_id], status=status)

    def supersede_active_goals(
        self, user_id: UUID, except_goal_id: UUID | None = None
    ) -> int:
        self._check("supersede_active_goals")
        superseded = 0
        for goal in list(self.goals.values()):
            if goal.user_id == user_id and goal.is_active and goal.id != except_goal_id:
                self.goals[goal.id] = replace(goal, status=GoalStatus.SUPERSEDED)
                superseded += 1
        return superseded

    def update_goal(self, goal_id: UUID, changes: dict[str, object]) -> None:
        self._check("update_goal")
        self.goals[goal_id] = replace(self.goals[goal_id], **changes)

    def active_count(self, user_id: UUID) -> int:
        return sum(
            1 for goal in self.goals.values() if goal.user_id == user_id and goal.is_active
        )


@dataclass
class InMemoryTrendRepository(SnapshotRepository, TrendRepository):
    """In-memory trend repository keyed by (user_id, date)."""

    rows: dict[tuple[UUID, date], TrendRow] = field(default_factory=dict)

    def _state(self) -> dict[str, object]:
        return {"rows": self.rows}

    def upsert(self, user_id: UUID, day: date, values) -> TrendRow:  # type: ignore[no-untyped-def]
        self._check("upsert")
        existing = self.rows.get((user_id, day))
        if existing is None:
            row = TrendRow(user_id=user_id, date=day, **{**TREND_VALUE_DEFAULTS, **values})
        else:
            row = replace(existing, **values)
        self.rows[(user_id, day)] = row
        return row

    def get_trend(self, user_id: UUID, day: date) -> TrendRow | None:
        return self.rows.get((user_id, day))

    def list_trends(self, user_id: UUID, date_from: date, date_to: date) -> list[TrendRow]:
        return sorted(
            (
                row
                for (owner, day), row in self.rows.items()
                if owner == user_id and date_from <= day <= date_to
            ),
            key=lambda row: row.date,
        )

    def add_day(self, user_id: UUID, day: date, **values: object) -> TrendRow:
        return self.upsert(user_id, day, values)


@dataclass
class FakeResponse:
    data: list[dict[str, object]] | None


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[list[dict[str, object]]]] = field(
        default_factory=lambda: {"select": []}
    )
    last_columns: str | None = None
    last_filters: list[tuple[str, object]] = field(default_factory=list)

    def queue(self, action: str, data: list[dict[str, object]]) -> None:
        self.response_queue[action].append(data)

    def select(self, columns: str = "*") -> "FakeTable":
        self._action = "select"
        self.last_columns = columns
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def execute(self) -> FakeResponse:
        action = getattr(self, "_action", "select")
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)


@dataclass
class FakeSupabaseClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        supabase_url="https://example.supabase.co",
        supabase_service_key=TEST_SUPABASE_KEY,
    )


@pytest.fixture
def product_repository() -> InMemoryProductRepository:
    repository = InMemoryProductRepository()
    repository.add(
        OATS_ID,
        "Rolled oats",
        calories=389.0,
        proteins=16.9,
        carbs=66.3,
        fats=6.9,
        fiber=10.6,
        sugars=None,
        sodium=2.0,
    )
    repository.add(
        CHICKEN_ID,
        "Chicken breast",
        calories=165.0,
        proteins=31.0,
        carbs=0.0,
        fats=3.6,
        fiber=0.0,
    )
    repository.add(
        BANANA_ID,
        "Banana",
        calories=89.0,
        proteins=1.1,
        carbs=22.8,
        fats=0.3,
        fiber=2.6,
        vitamin_c=8.7,
    )
    return repository


@pytest.fixture
def user_repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def snapshot_scope() -> SnapshotScope:
    return SnapshotScope()


@pytest.fixture
def meal_repository(snapshot_scope: SnapshotScope) -> InMemoryMealRepository:
    return InMemoryMealRepository(scope=snapshot_scope)


@pytest.fixture
def goal_repository(snapshot_scope: SnapshotScope) -> InMemoryGoalRepository:
    return InMemoryGoalRepository(scope=snapshot_scope)


@pytest.fixture
def trend_repository(snapshot_scope: SnapshotScope) -> InMemoryTrendRepository:
    return InMemoryTrendRepository(scope=snapshot_scope)


@pytest.fixture
def trend_service(
    trend_repository: InMemoryTrendRepository,
    meal_repository: InMemoryMealRepository,
    goal_repository: InMemoryGoalRepository,
) -> TrendService:
    return TrendService(
        repository=trend_repository, meals=meal_repository, goals=goal_repository
    )


@pytest.fixture
def meal_service(
    product_repository: InMemoryProductRepository,
    meal_repository: InMemoryMealRepository,
    trend_service: TrendService,
) -> MealService:
    return MealService(
        products=product_repository, repository=meal_repository, trends=trend_service
    )


@pytest.fixture
def goal_service(
    goal_repository: InMemoryGoalRepository, user_repository: InMemoryUserRepository
) -> GoalService:
    return GoalService(
        repository=goal_repository,
        users=user_repository,
        today=lambda: date(2024, 3, 4),
    )


@pytest.fixture
def analytics_service(trend_repository: InMemoryTrendRepository) -> AnalyticsService:
    return AnalyticsService(trends=trend_repository)


@pytest.fixture
def nutrition_service(
    product_repository: InMemoryProductRepository,
    meal_repository: InMemoryMealRepository,
    user_repository: InMemoryUserRepository,
) -> NutritionService:
    return NutritionService(
        products=product_repository, meals=meal_repository, users=user_repository
    )
