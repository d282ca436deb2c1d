"""Dependency container wiring for the application."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from calorie_wise.adapters.image_search_client import HttpxImageSearchClient
from calorie_wise.adapters.openai_chat_client import OpenAIChatClient
from calorie_wise.adapters.openai_structured_client import OpenAIStructuredClient
from calorie_wise.adapters.supabase_document_repository import (
    SupabaseDocumentRepository,
)
from calorie_wise.config import Settings, is_configured
from calorie_wise.services.chat import ChatService
from calorie_wise.services.meal_analysis import MealAnalysisService
from calorie_wise.services.orchestrator import SessionOrchestrator
from calorie_wise.services.persistence import PersistenceGateway
from calorie_wise.services.workout_plans import WorkoutPlanService

_logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    meal_analysis_service: MealAnalysisService
    workout_plan_service: WorkoutPlanService
    chat_service: ChatService
    persistence_gateway: PersistenceGateway | None
    orchestrator: SessionOrchestrator
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()

    structured_client: OpenAIStructuredClient | None = None
    chat_client: OpenAIChatClient | None = None
    if is_configured(resolved_settings.openai_api_key):
        structured_client = OpenAIStructuredClient.create(
            resolved_settings.openai_api_key
        )
        chat_client = OpenAIChatClient.create(resolved_settings.openai_api_key)
    else:
        _logger.warning("OPENAI_API_KEY is not set; AI features will report errors")

    image_search_client: HttpxImageSearchClient | None = None
    if resolved_settings.image_search_configured:
        image_search_client = HttpxImageSearchClient.create(
            api_key=resolved_settings.google_search_api_key,
            search_engine_id=resolved_settings.google_cse_id,
            base_url=resolved_settings.google_search_base_url,
        )

    persistence_gateway: PersistenceGateway | None = None
    if resolved_settings.persistence_configured:
        supabase_client = create_client(
            resolved_settings.supabase_url, resolved_settings.supabase_service_key
        )
        persistence_gateway = PersistenceGateway(
            SupabaseDocumentRepository(supabase_client)
        )
    else:
        _logger.warning("Supabase is not configured; only guest mode is available")

    meal_analysis_service = MealAnalysisService(
        client=structured_client,
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
    )
    workout_plan_service = WorkoutPlanService(
        client=structured_client,
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
        image_search=image_search_client,
    )
    chat_service = ChatService(
        client=chat_client,
        model=resolved_settings.openai_model,
        store=resolved_settings.openai_store,
    )
    orchestrator = SessionOrchestrator(
        meal_analysis=meal_analysis_service,
        workout_plans=workout_plan_service,
        chat=chat_service,
        gateway=persistence_gateway,
    )

    async def close_resources() -> None:
        await orchestrator.flush()
        if structured_client is not None:
            await structured_client.close()
        if chat_client is not None:
            await chat_client.close()
        if image_search_client is not None:
            await image_search_client.close()

    return AppContainer(
        settings=resolved_settings,
        meal_analysis_service=meal_analysis_service,
        workout_plan_service=workout_plan_service,
        chat_service=chat_service,
        persistence_gateway=persistence_gateway,
        orchestrator=orchestrator,
        close_resources=close_resources,
    )
