import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..database.models import Meal
from ..services.nutrition import day_bounds


class MealRepository:
    def __init__(self, session: Session):
        self.session = session

    def create_meal(self, meal: Meal) -> Meal:
        self.session.add(meal)
        self.session.commit()
        self.session.refresh(meal)
        return meal

    def get_meal(self, user_id: str, meal_id: str, for_update: bool = False) -> Optional[Meal]:
        stmt = select(Meal).where(Meal.user_id == user_id, Meal.id == meal_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.scalars(stmt).first()

    def save(self, meal: Meal) -> Meal:
        self.session.add(meal)
        self.session.commit()
        self.session.refresh(meal)
        return meal

    def find_recent_meals(
        self,
        user_id: str,
        limit: int = 10,
        meal_type: Optional[str] = None,
        day: Optional[datetime.date] = None,
        contains_food: Optional[str] = None,
    ) -> list[Meal]:
        stmt = select(Meal).where(Meal.user_id == user_id)
        if meal_type:
            stmt = stmt.where(Meal.meal_type == meal_type)
        if day:
            start, end = day_bounds(day)
            stmt = stmt.where(Meal.timestamp >= start, Meal.timestamp < end)
        stmt = stmt.order_by(Meal.created_at.desc(), Meal.timestamp.desc())

        if not contains_food:
            return list(self.session.scalars(stmt.limit(limit)).all())

        # foods is a JSON column, so the food filter runs in Python
        needle = contains_food.lower()
        meals = []
        for meal in self.session.scalars(stmt):
            if any(needle in str(f.get("name", "")).lower() for f in meal.foods or []):
                meals.append(meal)
                if len(meals) >= limit:
                    break
        return meals

    def get_meals_for_day(self, user_id: str, day: datetime.date) -> list[Meal]:
        start, end = day_bounds(day)
        stmt = (
            select(Meal)
            .where(Meal.user_id == user_id, Meal.timestamp >= start, Meal.timestamp < end)
            .order_by(Meal.timestamp.desc())
        )
        return list(self.session.scalars(stmt).all())
