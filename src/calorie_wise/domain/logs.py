"""Pure updates for daily logs and weight history."""

from collections.abc import Iterable
from datetime import date, datetime
from uuid import uuid4

from calorie_wise.domain.analysis import MealAnalysis
from calorie_wise.domain.models import (
    DailyLog,
    Meal,
    Nutrition,
    WeightEntry,
)


def sum_nutrition(meals: Iterable[Meal]) -> Nutrition:
    """Return the element-wise sum of the meals' totals."""
    total = Nutrition()
    for meal in meals:
        total = total + meal.total_nutrition
    return total


def append_meal(logs: list[DailyLog], meal: Meal, day: date) -> list[DailyLog]:
    """Return logs with the meal appended to the log for ``day``."""
    updated: list[DailyLog] = []
    found = False
    for log in logs:
        if log.date == day:
            meals = [*log.meals, meal]
            log = log.model_copy(
                update={"meals": meals, "total_nutrition": sum_nutrition(meals)}
            )
            found = True
        updated.append(log)
    if not found:
        updated.append(
            DailyLog(date=day, meals=[meal], total_nutrition=meal.total_nutrition)
        )
    return updated


def record_weight(logs: list[DailyLog], weight: float, day: date) -> list[DailyLog]:
    """Return logs with the weight set on the log for ``day``."""
    updated: list[DailyLog] = []
    found = False
    for log in logs:
        if log.date == day:
            log = log.model_copy(update={"weight": weight})
            found = True
        updated.append(log)
    if not found:
        updated.append(DailyLog(date=day, weight=weight))
    return updated


def insert_weight_entry(
    weight_log: list[WeightEntry], entry: WeightEntry
) -> list[WeightEntry]:
    """Append an entry and return the history sorted by date."""
    return sorted([*weight_log, entry], key=lambda item: item.date)


def build_meal(
    analysis: MealAnalysis,
    meal_type: str,
    logged_at: datetime,
    image_url: str | None = None,
) -> Meal:
    """Create a meal from an analysis result and the chosen meal type."""
    return Meal(
        id=uuid4().hex,
        name=meal_type,
        timestamp=logged_at,
        items=list(analysis.foods),
        total_nutrition=analysis.total_nutrition,
        image_url=image_url,
    )
