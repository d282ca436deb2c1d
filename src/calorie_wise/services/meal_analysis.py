"""Meal photo analysis using LLMs."""

import base64
from dataclasses import dataclass
from typing import Protocol

from calorie_wise.domain.analysis import MealAnalysis
from calorie_wise.services.ai_errors import (
    MEAL_ANALYSIS,
    MissingCredentialsError,
    classify_error,
)

_NUTRITION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "calories": {"type": "number", "minimum": 0},
        "protein": {"type": "number", "minimum": 0},
        "carbs": {"type": "number", "minimum": 0},
        "fat": {"type": "number", "minimum": 0},
    },
    "required": ["calories", "protein", "carbs", "fat"],
    "additionalProperties": False,
}

MEAL_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "foods": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "nutrition": _NUTRITION_SCHEMA,
                },
                "required": ["name", "nutrition"],
                "additionalProperties": False,
            },
        },
        "totalNutrition": _NUTRITION_SCHEMA,
    },
    "required": ["foods", "totalNutrition"],
    "additionalProperties": False,
}


class StructuredClient(Protocol):
    """Interface for LLM calls that return schema-conforming JSON."""

    async def generate(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        prompt: str,
        schema_name: str,
        schema: dict[str, object],
        image_data_url: str | None = None,
    ) -> dict[str, object]:
        """Return structured data matching the schema."""


@dataclass
class MealAnalysisService:
    """Service that prepares meal prompts and validates results."""

    client: StructuredClient | None
    model: str
    reasoning_effort: str | None
    store: bool

    async def analyze(
        self,
        image_bytes: bytes,
        meal_type: str,
        details: str | None = None,
    ) -> MealAnalysis:
        """Identify foods in a meal photo and estimate their nutrition."""
        try:
            if self.client is None:
                raise MissingCredentialsError("OPENAI_API_KEY is not set")
            raw = await self.client.generate(
                model=self.model,
                reasoning_effort=self.reasoning_effort,
                store=self.store,
                prompt=build_meal_prompt(meal_type, details),
                schema_name="meal_analysis",
                schema=MEAL_SCHEMA,
                image_data_url=_to_data_url(image_bytes),
            )
            return MealAnalysis.model_validate(raw)
        except Exception as exc:
            raise classify_error(exc, MEAL_ANALYSIS) from exc


def build_meal_prompt(meal_type: str, details: str | None = None) -> str:
    """Build the analysis prompt, prioritising user-supplied details."""
    prompt = (
        f'Analyze the meal in this image, which the user is logging as "{meal_type}". '
        "Identify each food item, estimate its quantity, and provide a nutritional "
        "breakdown including calories, protein, carbohydrates, and fat in grams. "
        "Summarize the total nutrition for the entire meal."
    )
    if details and details.strip():
        prompt += (
            " The user provided these additional details which should be highly "
            f'prioritized for accuracy: "{details.strip()}".'
        )
    return prompt


def _to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL for image input."""
    mime_type = _detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def _detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
