"""Domain models for the diet and fitness tracker.

Every model is immutable. Changes are expressed with ``model_copy(update=...)``
so only the edited path of a nested structure is copied. Field aliases are
camelCase so a dumped snapshot matches the stored document shape.
"""

from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class DomainModel(BaseModel):
    """Base model with camelCase aliases and frozen instances."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ActivityLevel(float, Enum):
    """Activity multiplier applied to the basal metabolic rate."""

    SEDENTARY = 1.2
    LIGHTLY_ACTIVE = 1.375
    MODERATELY_ACTIVE = 1.55
    VERY_ACTIVE = 1.725
    EXTRA_ACTIVE = 1.9


class Goal(str, Enum):
    """Weight goal chosen during setup."""

    LOSE = "lose"
    MAINTAIN = "maintain"
    GAIN = "gain"


ExerciseTiming = Literal["morning", "noon", "evening", "night"]


class Profile(DomainModel):
    """User profile captured during setup."""

    name: str = Field(min_length=1)
    age: int = Field(gt=0)
    sex: Literal["male", "female"]
    height: float = Field(gt=0, description="Height in inches.")
    weight: float = Field(gt=0, description="Current weight in kg.")
    activity_level: ActivityLevel
    goal: Goal
    target_weight: float = Field(gt=0)
    meals_per_day: int = Field(gt=0)
    exercise_preferences: str = Field(min_length=1)
    exercise_frequency: Literal["once", "twice"]
    exercise_timing: list[ExerciseTiming] = Field(default_factory=list)
    registration_date: datetime

    @model_validator(mode="after")
    def _require_timing_for_twice_daily(self) -> "Profile":
        if self.exercise_frequency == "twice" and not self.exercise_timing:
            raise ValueError("exercise_timing is required when exercising twice a day")
        return self


class Nutrition(DomainModel):
    """Calories and macronutrients in grams."""

    calories: float = 0.0
    protein: float = 0.0
    carbs: float = 0.0
    fat: float = 0.0

    def __add__(self, other: "Nutrition") -> "Nutrition":
        return Nutrition(
            calories=self.calories + other.calories,
            protein=self.protein + other.protein,
            carbs=self.carbs + other.carbs,
            fat=self.fat + other.fat,
        )


class FoodItem(DomainModel):
    """Single food identified in a meal."""

    name: str
    nutrition: Nutrition


class Meal(DomainModel):
    """Logged meal."""

    id: str
    name: str
    timestamp: datetime
    items: list[FoodItem] = Field(default_factory=list)
    total_nutrition: Nutrition = Field(default_factory=Nutrition)
    image_url: str | None = None


class DailyLog(DomainModel):
    """Meals and optional weight for one calendar date."""

    date: date
    meals: list[Meal] = Field(default_factory=list)
    total_nutrition: Nutrition = Field(default_factory=Nutrition)
    weight: float | None = None


class WeightEntry(DomainModel):
    """Weight measurement for a date."""

    date: date
    weight: float


class WorkoutDetail(DomainModel):
    """Named exercise parameter such as weight or incline."""

    name: str
    value: str


class Workout(DomainModel):
    """Single exercise within a session."""

    exercise: str
    sets: str = "N/A"
    reps: str = "N/A"
    notes: str | None = None
    details: list[WorkoutDetail] = Field(default_factory=list)
    image_url: str | None = None


class WorkoutSession(DomainModel):
    """Named group of workouts performed together."""

    name: str
    workouts: list[Workout] = Field(default_factory=list)


class DailyWorkout(DomainModel):
    """Sessions planned for one day of the week."""

    day: str
    focus: str
    sessions: list[WorkoutSession] = Field(default_factory=list)


class WorkoutPlan(DomainModel):
    """Weekly workout plan."""

    plan_name: str
    description: str
    weekly_schedule: list[DailyWorkout] = Field(default_factory=list)


class ChatMessagePart(DomainModel):
    """Text part of a chat message."""

    text: str


class GroundingSource(DomainModel):
    """Web source cited by a grounded chat reply."""

    uri: str
    title: str


class ChatMessage(DomainModel):
    """Message in a chat session."""

    id: str
    role: Literal["user", "model"]
    parts: list[ChatMessagePart]
    timestamp: datetime
    grounding: list[GroundingSource] | None = None

    @property
    def text(self) -> str:
        """Return the concatenated text of all parts."""
        return "".join(part.text for part in self.parts)


class ChatSession(DomainModel):
    """Conversation with the assistant."""

    id: str
    title: str
    history: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime


class Snapshot(DomainModel):
    """Complete state of one user's data."""

    user_profile: Profile | None = None
    daily_logs: list[DailyLog] = Field(default_factory=list)
    workout_plan: WorkoutPlan | None = None
    weight_log: list[WeightEntry] = Field(default_factory=list)
    chat_sessions: list[ChatSession] = Field(default_factory=list)
    active_chat_session_id: str | None = None

    def dump_fields(self, *names: str) -> dict[str, object]:
        """Return JSON-ready values for the named fields keyed by their alias."""
        return self.model_dump(mode="json", by_alias=True, include=set(names))

    def dump_document(self) -> dict[str, object]:
        """Return the whole snapshot as a JSON-ready document."""
        return self.model_dump(mode="json", by_alias=True)
