"""Models for meal analysis results."""

from pydantic import Field

from calorie_wise.domain.models import DomainModel, FoodItem, Nutrition


class MealAnalysis(DomainModel):
    """Structured output for meal photo analysis."""

    foods: list[FoodItem] = Field(min_length=1)
    total_nutrition: Nutrition
