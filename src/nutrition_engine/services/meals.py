"""Meal aggregation service."""

import logging
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, time
from statistics import fmean, pstdev
from typing import Protocol, TypeVar
from uuid import UUID

from nutrition_engine.domain.errors import NotFoundError, ValidationError
from nutrition_engine.domain.meals import (
    MacroDistribution,
    MealDistribution,
    MealItemInput,
    MealItemRecord,
    MealRecord,
    MealStats,
    MealTotals,
    MealType,
)
from nutrition_engine.domain.nutrients import (
    MEAL_TOTAL_FIELDS,
    NutrientValues,
    ProductProfile,
    round_int,
    round_to,
)
from nutrition_engine.services.portions import scale, to_grams

T = TypeVar("T")

_logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = frozenset({"meal_type", "date", "time", "name", "location", "notes"})


class ProductRepository(Protocol):
    """Read access to the external product catalog."""

    def get_product(self, product_id: UUID) -> ProductProfile | None:
        """Return a product's per-100g profile, if present."""


class MealRepository(Protocol):
    """Persistence interface for meals and meal items."""

    def run_atomic(self, fn: "Callable[[MealRepository], T]") -> T:
        """Run `fn` with a repository bound to one all-or-nothing transaction."""

    def create_meal(  # noqa: PLR0913
        self,
        user_id: UUID,
        day: date,
        meal_type: MealType,
        *,
        time: time | None,
        name: str | None,
        location: str | None,
        notes: str | None,
    ) -> UUID:
        """Create a meal with zero totals and return its id."""

    def get_meal(self, meal_id: UUID) -> MealRecord | None:
        """Return a meal with its items."""

    def list_meals(
        self, user_id: UUID, date_from: date, date_to: date
    ) -> list[MealRecord]:
        """Return a user's meals within an inclusive date range."""

    def update_meal(self, meal_id: UUID, changes: dict[str, object]) -> None:
        """Update descriptive meal fields."""

    def update_totals(self, meal_id: UUID, totals: MealTotals) -> None:
        """Persist materialized totals for a meal."""

    def delete_meal(self, meal_id: UUID) -> None:
        """Delete a meal row."""

    def create_item(  # noqa: PLR0913
        self,
        meal_id: UUID,
        product_id: UUID,
        quantity: float,
        unit: str,
        nutrients: NutrientValues,
    ) -> UUID:
        """Create a meal item with its nutrient snapshot."""

    def get_item(self, meal_id: UUID, item_id: UUID) -> MealItemRecord | None:
        """Return a meal item belonging to the meal."""

    def list_items(self, meal_id: UUID) -> list[MealItemRecord]:
        """Return the items of a meal."""

    def update_item(
        self, item_id: UUID, quantity: float, nutrients: NutrientValues
    ) -> None:
        """Replace a meal item's quantity and snapshot."""

    def delete_item(self, item_id: UUID) -> None:
        """Delete a meal item."""

    def delete_items(self, meal_id: UUID) -> None:
        """Delete every item of a meal."""


class DayRecorder(Protocol):
    """Receiver of per-day meal changes.

    Called inside the meal transaction, so it must write through repositories
    that join it.
    """

    def record_meals_for_day(self, user_id: UUID, day: date) -> object:
        """Refresh the aggregate row of a user's day."""


@dataclass
class MealService:
    """Owns meal line items and keeps meal totals consistent with them.

    Every change refreshes the affected trend days in the same transaction.
    """

    products: ProductRepository
    repository: MealRepository
    trends: DayRecorder | None = None

    def create_meal(  # noqa: PLR0913
        self,
        user_id: UUID,
        day: date,
        meal_type: MealType | str,
        items: Iterable[MealItemInput] = (),
        *,
        time: time | None = None,
        name: str | None = None,
        location: str | None = None,
        notes: str | None = None,
    ) -> MealRecord:
        """Create a meal with its initial items and compute totals once."""
        resolved_type = parse_meal_type(meal_type)
        requested = list(items)

        def _create(repo: MealRepository) -> UUID:
            meal_id = repo.create_meal(
                user_id,
                day,
                resolved_type,
                time=time,
                name=name,
                location=location,
                notes=notes,
            )
            for item in requested:
                self._insert_item(repo, meal_id, item.product_id, item.quantity, item.unit)
            if requested:
                _recalculate(repo, meal_id)
            self._refresh_day(user_id, day)
            return meal_id

        meal_id = self.repository.run_atomic(_create)
        _logger.info(
            "Meal created: meal_id=%s user_id=%s items=%s", meal_id, user_id, len(requested)
        )
        return self._require_meal(meal_id)

    def add_item(
        self, meal_id: UUID, product_id: UUID, quantity: float, unit: str = "g"
    ) -> MealRecord:
        """Add a product portion to a meal and refresh its totals."""

        def _add(repo: MealRepository) -> None:
            meal = _require(repo.get_meal(meal_id), "Meal", meal_id)
            self._insert_item(repo, meal_id, product_id, quantity, unit)
            _recalculate(repo, meal_id)
            self._refresh_day(meal.user_id, meal.date)

        self.repository.run_atomic(_add)
        _logger.debug("Meal item added: meal_id=%s product_id=%s", meal_id, product_id)
        return self._require_meal(meal_id)

    def remove_item(self, meal_id: UUID, item_id: UUID) -> MealRecord:
        """Remove an item from a meal and refresh its totals."""

        def _remove(repo: MealRepository) -> None:
            meal = _require(repo.get_meal(meal_id), "Meal", meal_id)
            _require(repo.get_item(meal_id, item_id), "MealItem", item_id)
            repo.delete_item(item_id)
            _recalculate(repo, meal_id)
            self._refresh_day(meal.user_id, meal.date)

        self.repository.run_atomic(_remove)
        _logger.debug("Meal item removed: meal_id=%s item_id=%s", meal_id, item_id)
        return self._require_meal(meal_id)

    def update_item_quantity(
        self, meal_id: UUID, item_id: UUID, quantity: float
    ) -> MealRecord:
        """Re-scale an item to a new quantity and refresh meal totals."""

        def _update(repo: MealRepository) -> None:
            meal = _require(repo.get_meal(meal_id), "Meal", meal_id)
            item = _require(repo.get_item(meal_id, item_id), "MealItem", item_id)
            product = self._require_product(item.product_id)
            nutrients = scale(product.nutrients, to_grams(quantity, item.unit))
            repo.update_item(item_id, float(quantity), nutrients)
            _recalculate(repo, meal_id)
            self._refresh_day(meal.user_id, meal.date)

        self.repository.run_atomic(_update)
        _logger.debug(
            "Meal item quantity updated: meal_id=%s item_id=%s quantity=%s",
            meal_id,
            item_id,
            quantity,
        )
        return self._require_meal(meal_id)

    def recalculate_totals(self, meal_id: UUID) -> MealTotals:
        """Recompute and persist a meal's totals from its items."""

        def _run(repo: MealRepository) -> MealTotals:
            _require(repo.get_meal(meal_id), "Meal", meal_id)
            return _recalculate(repo, meal_id)

        return self.repository.run_atomic(_run)

    def delete_meal(self, meal_id: UUID) -> None:
        """Delete a meal and all of its items."""

        def _delete(repo: MealRepository) -> MealRecord:
            meal = _require(repo.get_meal(meal_id), "Meal", meal_id)
            repo.delete_items(meal_id)
            repo.delete_meal(meal_id)
            self._refresh_day(meal.user_id, meal.date)
            return meal

        meal = self.repository.run_atomic(_delete)
        _logger.info("Meal deleted: meal_id=%s user_id=%s", meal_id, meal.user_id)

    def get_meal(self, meal_id: UUID) -> MealRecord:
        """Return a meal with items."""
        return self._require_meal(meal_id)

    def list_meals(self, user_id: UUID, day: date) -> list[MealRecord]:
        """Return a user's meals for one day."""
        return self.repository.list_meals(user_id, day, day)

    def list_meals_between(
        self, user_id: UUID, date_from: date, date_to: date
    ) -> list[MealRecord]:
        """Return a user's meals within an inclusive date range."""
        return self.repository.list_meals(user_id, date_from, date_to)

    def get_meal_distribution(
        self, user_id: UUID, date_from: date, date_to: date
    ) -> MealDistribution:
        return analyze_meal_distribution(self.list_meals_between(user_id, date_from, date_to))

    def get_meal_stats(self, user_id: UUID, date_from: date, date_to: date) -> MealStats:
        return meal_stats(self.list_meals_between(user_id, date_from, date_to))

    def update_meal_details(self, meal_id: UUID, **changes: object) -> MealRecord:
        """Update descriptive fields of a meal without touching its items."""
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        if "meal_type" in changes:
            changes["meal_type"] = parse_meal_type(changes["meal_type"])  # type: ignore[arg-type]

        def _update(repo: MealRepository) -> MealRecord:
            meal = _require(repo.get_meal(meal_id), "Meal", meal_id)
            if changes:
                repo.update_meal(meal_id, changes)
            after = _require(repo.get_meal(meal_id), "Meal", meal_id)
            self._refresh_day(after.user_id, after.date)
            if meal.date != after.date:
                self._refresh_day(meal.user_id, meal.date)
            return after

        return self.repository.run_atomic(_update)

    def duplicate_meal(
        self, meal_id: UUID, day: date, time: time | None = None
    ) -> MealRecord:
        """Copy a meal's items onto another date, re-scaled from the catalog."""
        source = self._require_meal(meal_id)
        return self.create_meal(
            source.user_id,
            day,
            source.meal_type,
            [
                MealItemInput(item.product_id, item.quantity, item.unit)
                for item in source.items
            ],
            time=time or source.time,
            name=f"{source.name} (copy)" if source.name else None,
            location=source.location,
            notes=source.notes,
        )

    def _insert_item(
        self,
        repo: MealRepository,
        meal_id: UUID,
        product_id: UUID,
        quantity: float,
        unit: str,
    ) -> UUID:
        grams = to_grams(quantity, unit)
        product = self._require_product(product_id)
        return repo.create_item(
            meal_id, product_id, float(quantity), unit, scale(product.nutrients, grams)
        )

    def _require_product(self, product_id: UUID) -> ProductProfile:
        return _require(self.products.get_product(product_id), "Product", product_id)

    def _require_meal(self, meal_id: UUID) -> MealRecord:
        return _require(self.repository.get_meal(meal_id), "Meal", meal_id)

    def _refresh_day(self, user_id: UUID, day: date) -> None:
        if self.trends is not None:
            self.trends.record_meals_for_day(user_id, day)


def parse_meal_type(value: MealType | str) -> MealType:
    """Return a MealType or raise for unknown values."""
    try:
        return MealType(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(f"Invalid meal type: {value}", field="meal_type") from exc


def sum_totals(items: Iterable[MealItemRecord]) -> MealTotals:
    """Sum item snapshots into meal totals; unknown values count as zero."""
    sums = dict.fromkeys(MEAL_TOTAL_FIELDS, 0.0)
    for item in items:
        for total_name, nutrient in MEAL_TOTAL_FIELDS.items():
            sums[total_name] += item.nutrients.get(nutrient) or 0.0
    return MealTotals(**{name: round_to(value, 1) for name, value in sums.items()})


def macro_distribution(meal: MealRecord) -> MacroDistribution | None:
    """Return the percentage of energy from each macro, None without calories."""
    if not meal.total_calories:
        return None
    return MacroDistribution(
        carbs=round_int(meal.total_carbs * 4 / meal.total_calories * 100),
        proteins=round_int(meal.total_proteins * 4 / meal.total_calories * 100),
        fats=round_int(meal.total_fats * 9 / meal.total_calories * 100),
    )


def is_nutritionally_balanced(meal: MealRecord) -> bool:
    """Return True when every macro share falls in its balanced range."""
    if not meal.total_calories:
        return False
    carbs = meal.total_carbs * 4 / meal.total_calories * 100
    proteins = meal.total_proteins * 4 / meal.total_calories * 100
    fats = meal.total_fats * 9 / meal.total_calories * 100
    return 40 <= carbs <= 65 and 15 <= proteins <= 25 and 20 <= fats <= 35  # noqa: PLR2004


def _recalculate(repo: MealRepository, meal_id: UUID) -> MealTotals:
    totals = sum_totals(repo.list_items(meal_id))
    repo.update_totals(meal_id, totals)
    return totals


def _require(value: T | None, resource: str, identifier: UUID) -> T:
    if value is None:
        raise NotFoundError(resource, identifier)
    return value


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def analyze_meal_distribution(meals: Sequence[MealRecord]) -> MealDistribution:
    """Count meals per type and summarize when each type is eaten.

    Average times are HH:MM over meals that have a time. Consistency is the
    population standard deviation in minutes and needs at least two times.
    """
    counts = Counter(meal.meal_type for meal in meals)
    times: dict[MealType, list[int]] = defaultdict(list)
    for meal in meals:
        if meal.time is not None:
            times[meal.meal_type].append(_minutes(meal.time))

    average_times = {}
    consistency = {}
    for meal_type, minutes in times.items():
        average = round_int(fmean(minutes))
        average_times[meal_type] = f"{average // 60:02d}:{average % 60:02d}"
        if len(minutes) > 1:
            consistency[meal_type] = round_to(pstdev(minutes), 1)

    days = len({meal.date for meal in meals})
    return MealDistribution(
        total_meals=len(meals),
        meals_per_day=round_to(len(meals) / days, 1) if days else 0.0,
        counts=dict(counts),
        average_times=average_times,
        time_consistency=consistency,
    )


def meal_stats(meals: Sequence[MealRecord]) -> MealStats:
    """Average meal totals and per-type counts, zeros without meals."""

    def _average(values: Iterable[float]) -> float:
        values = list(values)
        return round_to(fmean(values), 1) if values else 0.0

    return MealStats(
        total_meals=len(meals),
        average_calories=_average(meal.total_calories for meal in meals),
        average_proteins=_average(meal.total_proteins for meal in meals),
        average_carbs=_average(meal.total_carbs for meal in meals),
        average_fats=_average(meal.total_fats for meal in meals),
        counts=dict(Counter(meal.meal_type for meal in meals)),
    )
