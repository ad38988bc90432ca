import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...config import Settings
from ...repositories.meal_repository import MealRepository
from ...services.nutrition import build_daily_summary, serialize_meal
from ...utils import utc_now
from ..deps import get_app_settings, get_db_session

router = APIRouter(prefix="/api/nutrition", tags=["nutrition"])


def _day_or_today(date: Optional[str]) -> datetime.date:
    if not date:
        return utc_now().date()
    try:
        return datetime.date.fromisoformat(date)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {date}")


@router.get("/{user_id}/meals")
def list_meals(
    user_id: str,
    date: Optional[str] = None,
    session: Session = Depends(get_db_session),
):
    day = _day_or_today(date)
    meals = MealRepository(session).get_meals_for_day(user_id, day)
    return {"date": day.isoformat(), "meals": [serialize_meal(m) for m in meals]}


@router.get("/{user_id}/summary")
def daily_summary(
    user_id: str,
    date: Optional[str] = None,
    calorie_target: Optional[float] = None,
    session: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
):
    day = _day_or_today(date)
    target = settings.coach.default_calorie_target if calorie_target is None else calorie_target
    if target <= 0:
        raise HTTPException(status_code=400, detail="calorie_target must be positive")
    meals = MealRepository(session).get_meals_for_day(user_id, day)
    return build_daily_summary(day, meals, target)
