import uuid

from sqlalchemy import JSON, Column, DateTime, Float, Index, String, Text
from sqlalchemy.orm import declarative_base

from ..utils import utc_now

Base = declarative_base()


def new_document_id() -> str:
    return uuid.uuid4().hex


class Meal(Base):
    """nutrition/{user_id}/meals"""

    __tablename__ = "meals"

    id = Column(String(32), primary_key=True, default=new_document_id)
    user_id = Column(String, nullable=False, index=True)
    meal_type = Column(String, nullable=False)  # breakfast/lunch/dinner/snack
    timestamp = Column(DateTime, nullable=False, default=utc_now)
    foods = Column(JSON, nullable=False, default=list)
    total_calories = Column(Float, default=0)
    total_protein = Column(Float, default=0)
    total_carbs = Column(Float, default=0)
    total_fats = Column(Float, default=0)
    total_fiber = Column(Float, default=0)
    photo_url = Column(String)
    photo_urls = Column(JSON, default=list)
    notes = Column(Text, default="")
    logged_via = Column(String, default="chat")
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime)

    __table_args__ = (Index("ix_meals_user_created", "user_id", "created_at"),)

    def __repr__(self):
        return f"<Meal(id={self.id}, meal_type='{self.meal_type}', total_calories={self.total_calories})>"


class ActivitySession(Base):
    """activities/{user_id}/sessions"""

    __tablename__ = "activity_sessions"

    id = Column(String(32), primary_key=True, default=new_document_id)
    user_id = Column(String, nullable=False, index=True)
    # strength_training, cardio, sport, class, flexibility, other
    type = Column(String, nullable=False)
    name = Column(String, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utc_now)
    notes = Column(Text, default="")
    logged_via = Column(String, default="chat")
    exercises = Column(JSON)
    total_volume = Column(Float)  # lbs
    duration = Column(Float)  # minutes
    distance = Column(Float)
    distance_unit = Column(String)  # miles/km
    intensity = Column(String)  # low/moderate/high
    calories_burned = Column(Float)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime)

    __table_args__ = (
        Index("ix_activity_sessions_user_type_ts", "user_id", "type", "timestamp"),
    )

    def __repr__(self):
        return f"<ActivitySession(id={self.id}, type='{self.type}', name='{self.name}')>"


class ChatMessage(Base):
    """conversations/{user_id}/messages"""

    __tablename__ = "chat_messages"

    id = Column(String(32), primary_key=True, default=new_document_id)
    user_id = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utc_now)
    created_at = Column(DateTime, default=utc_now)
