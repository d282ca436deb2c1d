"""Shared test fixtures."""

import copy
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime

import pytest

from calorie_wise.config import Settings
from calorie_wise.containers import AppContainer
from calorie_wise.domain.models import Profile
from calorie_wise.services.chat import ChatClient, ChatDelta, ChatService
from calorie_wise.services.meal_analysis import MealAnalysisService, StructuredClient
from calorie_wise.services.orchestrator import SessionOrchestrator
from calorie_wise.services.persistence import DocumentRepository, PersistenceGateway
from calorie_wise.services.workout_plans import ImageSearchClient, WorkoutPlanService

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=UTC)

MEAL_RESULT: dict[str, object] = {
    "foods": [
        {
            "name": "Oatmeal",
            "nutrition": {"calories": 300, "protein": 10, "carbs": 50, "fat": 6},
        },
        {
            "name": "Banana",
            "nutrition": {"calories": 100, "protein": 1, "carbs": 25, "fat": 0},
        },
    ],
    "totalNutrition": {"calories": 400, "protein": 11, "carbs": 75, "fat": 6},
}

PLAN_RESULT: dict[str, object] = {
    "planName": "Lean Start",
    "description": "Three days of strength and cardio.",
    "weeklySchedule": [
        {
            "day": "Monday",
            "focus": "Full body",
            "sessions": [
                {
                    "name": "Morning Session",
                    "workouts": [
                        {
                            "exercise": "Barbell Squat (Back)",
                            "notes": None,
                            "details": [
                                {"name": "Sets", "value": "3"},
                                {"name": "Reps", "value": "10"},
                                {"name": "Weight", "value": "40 kg"},
                            ],
                        },
                        {
                            "exercise": "Treadmill Run",
                            "notes": "Easy pace",
                            "details": [{"name": "Duration", "value": "20 min"}],
                        },
                    ],
                }
            ],
        }
    ],
}


def make_profile(**overrides: object) -> Profile:
    data: dict[str, object] = {
        "name": "Alex",
        "age": 30,
        "sex": "male",
        "height": 70,
        "weight": 90,
        "activity_level": 1.2,
        "goal": "lose",
        "target_weight": 80,
        "meals_per_day": 3,
        "exercise_preferences": "Gym and running",
        "exercise_frequency": "once",
        "registration_date": datetime(2024, 5, 1, 9, 0, tzinfo=UTC),
    }
    data.update(overrides)
    return Profile.model_validate(data)


@dataclass
class InMemoryDocumentRepository(DocumentRepository):
    """In-memory document store that merges top-level fields."""

    documents: dict[str, dict[str, object]] = field(default_factory=dict)
    merges: list[tuple[str, dict[str, object]]] = field(default_factory=list)
    fail_get: bool = False
    fail_merge: bool = False

    def get_document(self, user_id: str) -> dict[str, object] | None:
        if self.fail_get:
            raise ConnectionError("store unavailable")
        document = self.documents.get(user_id)
        return copy.deepcopy(document) if document is not None else None

    def merge_document(self, user_id: str, fields: dict[str, object]) -> None:
        if self.fail_merge:
            raise ConnectionError("store unavailable")
        self.merges.append((user_id, copy.deepcopy(fields)))
        self.documents.setdefault(user_id, {}).update(copy.deepcopy(fields))


@dataclass
class FakeStructuredClient(StructuredClient):
    """Structured client returning canned results per schema name."""

    results: dict[str, dict[str, object]] = field(
        default_factory=lambda: {
            "meal_analysis": MEAL_RESULT,
            "workout_plan": PLAN_RESULT,
        }
    )
    error: Exception | None = None
    calls: list[dict[str, object]] = field(default_factory=list)

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
        self.calls.append(
            {
                "model": model,
                "prompt": prompt,
                "schema_name": schema_name,
                "image_data_url": image_data_url,
            }
        )
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.results[schema_name])


@dataclass
class FakeChatClient(ChatClient):
    """Chat client replaying scripted deltas."""

    deltas: list[ChatDelta] = field(
        default_factory=lambda: [ChatDelta(text="Hello"), ChatDelta(text=" there")]
    )
    error: Exception | None = None
    calls: list[dict[str, object]] = field(default_factory=list)

    async def stream(  # noqa: PLR0913
        self,
        *,
        model: str,
        store: bool,
        instructions: str,
        messages: list[dict[str, str]],
        use_web_search: bool,
    ) -> AsyncIterator[ChatDelta]:
        self.calls.append(
            {
                "instructions": instructions,
                "messages": messages,
                "use_web_search": use_web_search,
            }
        )
        for delta in self.deltas:
            yield delta
        if self.error is not None:
            raise self.error


@dataclass
class FakeImageSearchClient(ImageSearchClient):
    """Image search returning the same links for every query."""

    links: list[str] = field(
        default_factory=lambda: ["https://img.example.com/squat.jpg"]
    )
    queries: list[str] = field(default_factory=list)

    async def search_images(self, query: str) -> list[str]:
        self.queries.append(query)
        return list(self.links)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="openai-key",
        supabase_url=None,
        supabase_service_key=None,
        google_search_api_key=None,
        google_cse_id=None,
    )


@pytest.fixture
def repository() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def structured_client() -> FakeStructuredClient:
    return FakeStructuredClient()


@pytest.fixture
def chat_client() -> FakeChatClient:
    return FakeChatClient()


@pytest.fixture
def image_search() -> FakeImageSearchClient:
    return FakeImageSearchClient()


@pytest.fixture
def orchestrator(
    repository: InMemoryDocumentRepository,
    structured_client: FakeStructuredClient,
    chat_client: FakeChatClient,
    image_search: FakeImageSearchClient,
) -> SessionOrchestrator:
    return SessionOrchestrator(
        meal_analysis=MealAnalysisService(
            client=structured_client,
            model="gpt-5.2",
            reasoning_effort="low",
            store=False,
        ),
        workout_plans=WorkoutPlanService(
            client=structured_client,
            model="gpt-5.2",
            reasoning_effort="low",
            store=False,
            image_search=image_search,
        ),
        chat=ChatService(client=chat_client, model="gpt-5.2", store=False),
        gateway=PersistenceGateway(repository),
        clock=lambda: NOW,
    )


@pytest.fixture
def container(
    settings: Settings, orchestrator: SessionOrchestrator
) -> AppContainer:
    async def close_resources() -> None:
        await orchestrator.flush()

    return AppContainer(
        settings=settings,
        meal_analysis_service=orchestrator.meal_analysis,
        workout_plan_service=orchestrator.workout_plans,
        chat_service=orchestrator.chat,
        persistence_gateway=orchestrator.gateway,
        orchestrator=orchestrator,
        close_resources=close_resources,
    )
