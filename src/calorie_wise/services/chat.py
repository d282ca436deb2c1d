"""Streaming chat with the fitness assistant."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import date
from typing import Protocol

from calorie_wise.domain.models import (
    ChatMessage,
    DailyLog,
    GroundingSource,
    Profile,
    WeightEntry,
    WorkoutPlan,
)
from calorie_wise.services.ai_errors import (
    CHAT,
    EmptyResponseError,
    MissingCredentialsError,
    classify_error,
)

RECENT_LOG_COUNT = 7
RECENT_WEIGHT_COUNT = 10


@dataclass(frozen=True)
class ChatDelta:
    """Incremental piece of a streamed reply.

    ``grounding`` is the full citation list seen so far for the turn, or None
    when the chunk carried no citations.
    """

    text: str
    grounding: list[GroundingSource] | None = None


class ChatClient(Protocol):
    """Interface for token-streaming chat completions."""

    def stream(  # noqa: PLR0913
        self,
        *,
        model: str,
        store: bool,
        instructions: str,
        messages: list[dict[str, str]],
        use_web_search: bool,
    ) -> AsyncIterator[ChatDelta]:
        """Yield reply deltas in order until the reply is complete."""


@dataclass(frozen=True)
class ChatContext:
    """User data summarised into the assistant's instructions."""

    profile: Profile
    daily_logs: list[DailyLog]
    weight_log: list[WeightEntry]
    workout_plan: WorkoutPlan | None
    today: date


@dataclass
class ChatService:
    """Service that composes chat context and streams replies."""

    client: ChatClient | None
    model: str
    store: bool

    async def stream_reply(
        self,
        context: ChatContext,
        history: list[ChatMessage],
        message: str,
        use_web_search: bool = False,
    ) -> AsyncIterator[ChatDelta]:
        """Stream the assistant's reply to ``message``.

        Any failure, including a reply that ends without text, is raised as
        AIServiceError.
        """
        received_text = False
        try:
            if self.client is None:
                raise MissingCredentialsError("OPENAI_API_KEY is not set")
            messages = [
                {"role": _api_role(item.role), "content": item.text}
                for item in history
                if item.text
            ]
            messages.append({"role": "user", "content": message})
            async for delta in self.client.stream(
                model=self.model,
                store=self.store,
                instructions=build_system_context(context),
                messages=messages,
                use_web_search=use_web_search,
            ):
                if delta.text:
                    received_text = True
                yield delta
            if not received_text:
                raise EmptyResponseError("The chat reply contained no text")
        except Exception as exc:
            raise classify_error(exc, CHAT) from exc


def _api_role(role: str) -> str:
    return "assistant" if role == "model" else "user"


def build_system_context(context: ChatContext) -> str:
    """Summarise profile, recent logs, weight history and plan for the model."""
    profile = context.profile
    feet, inches = divmod(int(profile.height), 12)
    starting_weight = (
        context.weight_log[0].weight if context.weight_log else profile.weight
    )
    recent_logs = "\n".join(
        f"- Date: {log.date.isoformat()}, "
        f"Cals: {round(log.total_nutrition.calories)}, "
        f"Weight: {f'{log.weight}kg' if log.weight is not None else 'N/A'}"
        for log in context.daily_logs[-RECENT_LOG_COUNT:]
    )
    weight_history = "\n".join(
        f"- Date: {entry.date.isoformat()}, Weight: {entry.weight}kg"
        for entry in context.weight_log[-RECENT_WEIGHT_COUNT:]
    )
    if context.workout_plan:
        plan_summary = (
            f"- Plan: {context.workout_plan.plan_name}\n"
            f"- Description: {context.workout_plan.description}"
        )
    else:
        plan_summary = "- No workout plan generated yet."

    return (
        "You are CalorieWise AI, a helpful and knowledgeable weight-loss and "
        "fitness assistant.\n"
        f"Today's date is {context.today.isoformat()}.\n"
        "You have access to the user's profile and history. Use it to give "
        "personalized, accurate and supportive answers.\n\n"
        "**USER PROFILE:**\n"
        f"- Name: {profile.name}\n"
        f"- Age: {profile.age}\n"
        f"- Sex: {profile.sex}\n"
        f"- Height: {feet}'{inches}\"\n"
        f"- Started On: {profile.registration_date.date().isoformat()}\n"
        f"- Goal: {profile.goal.value} weight\n"
        f"- Starting Weight: {starting_weight} kg\n"
        f"- Current Weight: {profile.weight} kg\n"
        f"- Target Weight: {profile.target_weight} kg\n"
        f"- Activity Level: {profile.activity_level.name.replace('_', ' ').title()}\n\n"
        "**WORKOUT PLAN SUMMARY:**\n"
        f"{plan_summary}\n\n"
        f"**RECENT WEIGHT HISTORY (last {RECENT_WEIGHT_COUNT} entries):**\n"
        f"{weight_history or 'No weight history yet.'}\n\n"
        f"**RECENT DAILY LOGS (last {RECENT_LOG_COUNT} days):**\n"
        f"{recent_logs or 'No meals logged recently.'}\n\n"
        "When answering, be encouraging and actionable. If you use information "
        "from web search, you MUST cite your sources."
    )
