"""Request and response models for the HTTP intent surface."""

from datetime import date

from pydantic import Field

from calorie_wise.domain.models import DomainModel


class SignInRequest(DomainModel):
    """Identity confirmed by the authentication provider."""

    user_id: str = Field(min_length=1)


class MealPhotoRequest(DomainModel):
    """Meal photo to analyze and log."""

    image_base64: str = Field(min_length=1)
    meal_type: str = Field(min_length=1)
    day: date | None = None
    details: str | None = None
    image_url: str | None = None


class WeightRequest(DomainModel):
    """Weight measurement for a date."""

    weight: float = Field(gt=0)
    day: date


class WorkoutEditRequest(DomainModel):
    """Fields of a workout the user changed."""

    exercise: str | None = None
    sets: str | None = None
    reps: str | None = None
    notes: str | None = None


class DetailEditRequest(DomainModel):
    """New value for a workout detail."""

    value: str


class ChatMessageRequest(DomainModel):
    """Message sent to the assistant."""

    message: str = Field(min_length=1)
    use_web_search: bool = False
