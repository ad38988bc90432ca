import datetime
import logging
from typing import Any, Iterable, Union

from ..schemas import FoodItem, MacroTotals
from ..utils import isoformat_utc

logger = logging.getLogger("ava_coach.nutrition")

DEFAULT_CALORIE_TARGET = 2400


def calculate_meal_totals(foods: Iterable[Union[FoodItem, dict[str, Any]]]) -> MacroTotals:
    """Sum the macros of every food line item. Missing values count as 0."""
    totals = MacroTotals()
    for food in foods:
        if isinstance(food, FoodItem):
            food = food.model_dump()
        totals.calories += food.get("calories") or 0
        totals.protein += food.get("protein") or 0
        totals.carbs += food.get("carbs") or 0
        totals.fats += food.get("fats") or 0
        totals.fiber += food.get("fiber") or 0
    return totals


def apply_totals(meal, foods: list[dict[str, Any]]) -> None:
    """Store foods on the meal together with their recomputed totals."""
    totals = calculate_meal_totals(foods)
    meal.foods = foods
    meal.total_calories = totals.calories
    meal.total_protein = totals.protein
    meal.total_carbs = totals.carbs
    meal.total_fats = totals.fats
    meal.total_fiber = totals.fiber


def day_bounds(day: datetime.date) -> tuple[datetime.datetime, datetime.datetime]:
    start = datetime.datetime.combine(day, datetime.time.min)
    return start, start + datetime.timedelta(days=1)


def serialize_meal(meal) -> dict[str, Any]:
    return {
        "id": meal.id,
        "meal_type": meal.meal_type,
        "timestamp": isoformat_utc(meal.timestamp or meal.created_at),
        "foods": meal.foods or [],
        "total_calories": meal.total_calories or 0,
        "total_protein": meal.total_protein or 0,
        "total_carbs": meal.total_carbs or 0,
        "total_fats": meal.total_fats or 0,
        "total_fiber": meal.total_fiber or 0,
        "photo_url": meal.photo_url,
        "notes": meal.notes or "",
        "logged_via": meal.logged_via or "chat",
    }


def build_daily_summary(
    day: datetime.date, meals: list, calorie_target: float = DEFAULT_CALORIE_TARGET
) -> dict[str, Any]:
    """Daily calorie totals and progress toward the target (capped at 1.0)."""
    totals = MacroTotals()
    for meal in meals:
        totals.calories += meal.total_calories or 0
        totals.protein += meal.total_protein or 0
        totals.carbs += meal.total_carbs or 0
        totals.fats += meal.total_fats or 0
        totals.fiber += meal.total_fiber or 0

    progress = min(totals.calories / calorie_target, 1.0) if calorie_target > 0 else 0.0

    summary = {
        "date": day.isoformat(),
        "total_calories": totals.calories,
        "total_protein": totals.protein,
        "total_carbs": totals.carbs,
        "total_fats": totals.fats,
        "total_fiber": totals.fiber,
        "calorie_target": calorie_target,
        "progress": progress,
        "meals_count": len(meals),
        "meals": [serialize_meal(m) for m in meals],
    }
    logger.info(
        "Daily summary %s: %s / %s kcal (%d%%), %d meals",
        summary["date"],
        totals.calories,
        calorie_target,
        round(progress * 100),
        len(meals),
    )
    return summary
