"""Conversion of domain objects into JSON-shaped payloads."""

from dataclasses import fields, is_dataclass
from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from nutrition_engine.domain.goals import GoalRecord
from nutrition_engine.domain.meals import MealItemRecord, MealRecord


def to_payload(value: object) -> object:
    """Recursively convert dataclasses and scalars into JSON-friendly values."""
    if isinstance(value, MealRecord):
        return _meal_payload(value)
    if isinstance(value, GoalRecord):
        return _goal_payload(value)
    if is_dataclass(value) and not isinstance(value, type):
        return {item.name: to_payload(getattr(value, item.name)) for item in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime | date | time):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): to_payload(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [to_payload(item) for item in value]
    return value


def _meal_payload(meal: MealRecord) -> dict[str, object]:
    payload = {
        item.name: to_payload(getattr(meal, item.name))
        for item in fields(meal)
        if item.name != "totals"
    }
    payload.update(to_payload(meal.totals))
    payload["type"] = payload["meal_type"]
    payload["items"] = [_item_payload(item) for item in meal.items]
    return payload


def _item_payload(item: MealItemRecord) -> dict[str, object]:
    payload = {field_.name: to_payload(getattr(item, field_.name)) for field_ in fields(item)}
    for name in ("calories", "proteins", "carbs", "fats", "fiber"):
        payload[name] = item.nutrients.get(name)
    return payload


def _goal_payload(goal: GoalRecord) -> dict[str, object]:
    payload = {item.name: to_payload(getattr(goal, item.name)) for item in fields(goal)}
    payload["is_active"] = goal.is_active
    payload["target_macros"] = to_payload(goal.target_macros)
    return payload
