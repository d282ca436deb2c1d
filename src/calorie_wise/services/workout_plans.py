"""Workout plan generation with exercise images."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Protocol

from calorie_wise.domain.models import ActivityLevel, Profile, Workout, WorkoutPlan
from calorie_wise.services.ai_errors import (
    WORKOUT_PLAN,
    EmptyResponseError,
    MissingCredentialsError,
    classify_error,
)
from calorie_wise.services.meal_analysis import StructuredClient

_logger = logging.getLogger(__name__)

_PROMOTED_DETAILS = ("Sets", "Reps")
_IMAGE_EXTENSION = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)

_ACTIVITY_DESCRIPTIONS = {
    ActivityLevel.SEDENTARY: "Sedentary (little or no exercise)",
    ActivityLevel.LIGHTLY_ACTIVE: "Lightly Active (exercise 1-3 days/week)",
    ActivityLevel.MODERATELY_ACTIVE: "Moderately Active (exercise 3-5 days/week)",
    ActivityLevel.VERY_ACTIVE: "Very Active (exercise 6-7 days/week)",
    ActivityLevel.EXTRA_ACTIVE: "Extra Active (very hard exercise & physical job)",
}

_WORKOUT_DAYS = {
    ActivityLevel.SEDENTARY: "a 2-3 day",
    ActivityLevel.LIGHTLY_ACTIVE: "a 3-day",
    ActivityLevel.MODERATELY_ACTIVE: "a 4-5 day",
    ActivityLevel.VERY_ACTIVE: "a 6-day",
    ActivityLevel.EXTRA_ACTIVE: "an intense 6-7 day",
}

PLAN_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "planName": {"type": "string"},
        "description": {"type": "string"},
        "weeklySchedule": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "day": {"type": "string"},
                    "focus": {"type": "string"},
                    "sessions": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "name": {"type": "string"},
                                "workouts": {
                                    "type": "array",
                                    "items": {
                                        "type": "object",
                                        "properties": {
                                            "exercise": {"type": "string"},
                                            "notes": {
                                                "anyOf": [
                                                    {"type": "string"},
                                                    {"type": "null"},
                                                ]
                                            },
                                            "details": {
                                                "type": "array",
                                                "items": {
                                                    "type": "object",
                                                    "properties": {
                                                        "name": {"type": "string"},
                                                        "value": {"type": "string"},
                                                    },
                                                    "required": ["name", "value"],
                                                    "additionalProperties": False,
                                                },
                                            },
                                        },
                                        "required": ["exercise", "notes", "details"],
                                        "additionalProperties": False,
                                    },
                                },
                            },
                            "required": ["name", "workouts"],
                            "additionalProperties": False,
                        },
                    },
                },
                "required": ["day", "focus", "sessions"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["planName", "description", "weeklySchedule"],
    "additionalProperties": False,
}


class ImageSearchClient(Protocol):
    """Interface for web image search."""

    async def search_images(self, query: str) -> list[str]:
        """Return candidate image links for a query, best match first."""


@dataclass
class WorkoutPlanService:
    """Service that generates workout plans and attaches exercise images."""

    client: StructuredClient | None
    model: str
    reasoning_effort: str | None
    store: bool
    image_search: ImageSearchClient | None = None
    _warned_missing_search: bool = field(default=False, init=False, repr=False)

    async def generate(self, profile: Profile) -> WorkoutPlan:
        """Generate a plan for the profile; raises AIServiceError on failure."""
        try:
            if self.client is None:
                raise MissingCredentialsError("OPENAI_API_KEY is not set")
            raw = await self.client.generate(
                model=self.model,
                reasoning_effort=self.reasoning_effort,
                store=self.store,
                prompt=build_plan_prompt(profile),
                schema_name="workout_plan",
                schema=PLAN_SCHEMA,
            )
            if not raw:
                raise EmptyResponseError("Received an empty workout plan")
            plan = WorkoutPlan.model_validate(promote_set_and_rep_details(raw))
        except Exception as exc:
            raise classify_error(exc, WORKOUT_PLAN) from exc
        return await self.attach_images(plan)

    async def attach_images(self, plan: WorkoutPlan) -> WorkoutPlan:
        """Look up one image per workout concurrently and attach the results."""
        if self.image_search is None:
            if not self._warned_missing_search:
                _logger.warning(
                    "Image search is not configured; skipping exercise images. "
                    "Set GOOGLE_SEARCH_API_KEY and GOOGLE_CSE_ID to enable them."
                )
                self._warned_missing_search = True
            return plan

        names = [
            workout.exercise
            for day in plan.weekly_schedule
            for session in day.sessions
            for workout in session.workouts
        ]
        links = iter(
            await asyncio.gather(*(self._find_image(name) for name in names))
        )
        schedule = []
        for day in plan.weekly_schedule:
            sessions = []
            for session in day.sessions:
                workouts = [
                    _with_image(workout, next(links)) for workout in session.workouts
                ]
                sessions.append(session.model_copy(update={"workouts": workouts}))
            schedule.append(day.model_copy(update={"sessions": sessions}))
        return plan.model_copy(update={"weekly_schedule": schedule})

    async def _find_image(self, exercise: str) -> str | None:
        query = f"{exercise.split('(')[0].strip()} exercise demonstration"
        try:
            links = await self.image_search.search_images(query)
        except Exception as exc:
            _logger.warning("Image lookup failed for %r: %s", query, exc)
            return None
        link = select_image_link(links)
        if link is None:
            _logger.warning("No image found for %r", query)
        return link


def select_image_link(links: list[str]) -> str | None:
    """Prefer secure links to image files, else the first link, else None."""
    for link in links:
        if link.startswith("https://") and _IMAGE_EXTENSION.search(link):
            return link
    return links[0] if links else None


def promote_set_and_rep_details(raw: dict[str, object]) -> dict[str, object]:
    """Move the Sets and Reps details of each workout into dedicated fields."""
    schedule = []
    for day in raw.get("weeklySchedule") or []:
        sessions = []
        for session in day.get("sessions") or []:
            workouts = [
                _promote_workout(workout) for workout in session.get("workouts") or []
            ]
            sessions.append({**session, "workouts": workouts})
        schedule.append({**day, "sessions": sessions})
    return {**raw, "weeklySchedule": schedule}


def _promote_workout(workout: dict[str, object]) -> dict[str, object]:
    details = list(workout.get("details") or [])
    promoted = {name: "N/A" for name in _PROMOTED_DETAILS}
    for detail in details:
        name = detail.get("name")
        if name in promoted and promoted[name] == "N/A":
            promoted[name] = str(detail.get("value"))
    residual = [
        {"name": str(detail.get("name")), "value": str(detail.get("value"))}
        for detail in details
        if detail.get("name") not in _PROMOTED_DETAILS
    ]
    return {
        **workout,
        "sets": promoted["Sets"],
        "reps": promoted["Reps"],
        "details": residual,
    }


def _with_image(workout: Workout, link: str | None) -> Workout:
    if link is None:
        return workout
    return workout.model_copy(update={"image_url": link})


def build_plan_prompt(profile: Profile) -> str:
    """Describe the profile and the expected plan shape for the model."""
    feet, inches = divmod(int(profile.height), 12)
    if profile.exercise_frequency == "once":
        frequency = "once a day"
    else:
        frequency = (
            "twice a day, specifically during the "
            f"{' and '.join(profile.exercise_timing)}"
        )
    activity = _ACTIVITY_DESCRIPTIONS.get(profile.activity_level, "not specified")
    days = _WORKOUT_DAYS.get(profile.activity_level, "a balanced 3-5 day")
    return (
        "Based on the following user profile, create a personalized weekly workout "
        f"plan. The user is a {profile.age}-year-old {profile.sex}, currently weighs "
        f"{profile.weight} kg, is {feet}'{inches}\" tall. Their primary goal is to "
        f"{profile.goal.value} weight, with a target of {profile.target_weight} kg. "
        f"They started on {profile.registration_date.date().isoformat()}. Their "
        f'self-reported activity level is "{activity}". Their exercise preferences '
        f'are: "{profile.exercise_preferences}". They eat {profile.meals_per_day} '
        f"meals a day and plan to exercise {frequency}.\n\n"
        f"Generate {days} workout plan suitable for their goals and preferences.\n"
        "- Include a mix of resistance training and cardiovascular work appropriate "
        "for their goal.\n"
        "- If the user exercises twice a day, create two distinct, complementary "
        "sessions for each workout day (e.g. a 'Morning Session' and an 'Evening "
        "Session'); otherwise create exactly one session per day.\n"
        "- For EACH exercise provide a 'details' array that MUST include 'Sets' and "
        "'Reps' (or duration).\n"
        "- Strength exercises must also include 'Weight' (e.g. "
        '{"name": "Weight", "value": "50 kg"}).\n'
        "- Cardio machines must also include settings such as 'Duration', 'Speed', "
        "'Incline' or 'Resistance Level'.\n"
        "- Use common, searchable exercise names (e.g. 'Barbell Squat', "
        "'Dumbbell Bench Press', 'Treadmill Run')."
    )
