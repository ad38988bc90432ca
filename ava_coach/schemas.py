from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MealType = Literal["breakfast", "lunch", "dinner", "snack"]
ActivityType = Literal[
    "strength_training", "cardio", "sport", "class", "flexibility", "other"
]
WeightUnit = Literal["lbs", "kg"]
DistanceUnit = Literal["miles", "km"]
Intensity = Literal["low", "moderate", "high"]

MEAL_TYPES = ("breakfast", "lunch", "dinner", "snack")


class FoodItem(BaseModel):
    name: str = Field(..., description="Food name")
    quantity: str = Field("", description='Quantity with unit, e.g. "2 eggs"')
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fats: float = 0
    fiber: float = 0

    @field_validator("calories", "protein", "carbs", "fats", "fiber", mode="before")
    @classmethod
    def _none_as_zero(cls, value):
        return 0 if value is None else value


class MacroTotals(BaseModel):
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fats: float = 0
    fiber: float = 0


class LogMealParams(BaseModel):
    meal_type: MealType
    foods: List[FoodItem] = Field(..., min_length=1)
    timestamp: Optional[str] = None
    notes: Optional[str] = None
    photo_url: Optional[str] = None


class Exercise(BaseModel):
    name: str
    sets: int = Field(..., ge=1)
    reps: int = Field(..., ge=1)
    weight: float = Field(..., ge=0)
    unit: WeightUnit = "lbs"


class PreviousBest(BaseModel):
    weight: float
    unit: WeightUnit
    date: Optional[str] = None


class ExerciseRecord(Exercise):
    """An exercise as stored on a session, with PR info."""

    is_pr: bool = False
    previous_best: Optional[PreviousBest] = None


class LogActivityParams(BaseModel):
    type: ActivityType
    name: str
    duration: Optional[float] = None
    exercises: Optional[List[Exercise]] = None
    distance: Optional[float] = None
    distance_unit: Optional[DistanceUnit] = None
    intensity: Optional[Intensity] = None
    calories_burned: Optional[float] = None
    timestamp: Optional[str] = None
    notes: Optional[str] = None


class UpdateActivityParams(BaseModel):
    session_id: str
    exercises: List[Exercise] = Field(..., min_length=1)
    name: Optional[str] = None
    notes: Optional[str] = None


class MealUpdateAnalysis(BaseModel):
    """The complete meal object re-derived by the analysis model."""

    model_config = ConfigDict(populate_by_name=True)

    meal_type: MealType = Field(..., alias="mealType")
    foods: List[FoodItem]
    notes: str = ""
    changes_summary: str = Field("", alias="changesSummary")

    @field_validator("notes", "changes_summary", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return "" if value is None else value


class MealIdentification(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    meal_id: Optional[str] = Field(None, alias="mealId")
    description: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class UserProfile(BaseModel):
    name: Optional[str] = None
    weight: Optional[float] = None
    weight_unit: WeightUnit = "lbs"
    height_cm: Optional[float] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    calorie_target: Optional[int] = None
    goal: Optional[str] = None


class ChatMessageIn(BaseModel):
    role: str
    content: Any = ""


class ChatRequest(BaseModel):
    messages: List[ChatMessageIn]
    # histories are persisted only for requests that name a user
    user_id: Optional[str] = None
    user_profile: Optional[UserProfile] = None
    image_url: Optional[str] = None


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResult(BaseModel):
    message: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    actions: List[dict[str, Any]] = Field(default_factory=list)


class UploadResult(BaseModel):
    url: str
    filename: str
    size: int
