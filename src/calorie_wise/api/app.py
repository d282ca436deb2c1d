"""FastAPI application factory."""

import asyncio
import base64
import binascii
import json
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from calorie_wise.api.models import (
    ChatMessageRequest,
    DetailEditRequest,
    MealPhotoRequest,
    SignInRequest,
    WeightRequest,
    WorkoutEditRequest,
)
from calorie_wise.app_logging import configure_logging
from calorie_wise.containers import AppContainer
from calorie_wise.domain.errors import ConfigurationError, InactiveSessionError
from calorie_wise.domain.goals import WeightProjection
from calorie_wise.domain.models import (
    ChatMessage,
    Meal,
    Profile,
    Snapshot,
    Workout,
    WorkoutPlan,
)
from calorie_wise.services.ai_errors import AIServiceError
from calorie_wise.services.orchestrator import SessionOrchestrator


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        pending = app.state.background_tasks
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container
    app.state.background_tasks = set()

    @app.exception_handler(AIServiceError)
    async def ai_error_handler(_: Request, exc: AIServiceError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": exc.message, "kind": exc.kind.value},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        _: Request, exc: ConfigurationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": str(exc)},
        )

    @app.exception_handler(InactiveSessionError)
    async def inactive_session_handler(
        _: Request, exc: InactiveSessionError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)}
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/state")
    async def state(request: Request) -> dict[str, object]:
        """Return the snapshot together with session flags and derived views."""
        return _state_payload(_orchestrator(request))

    @app.post("/session/guest")
    async def continue_as_guest(request: Request) -> dict[str, object]:
        """Start a guest session."""
        orchestrator = _orchestrator(request)
        orchestrator.continue_as_guest()
        return _state_payload(orchestrator)

    @app.post("/session/sign-in")
    async def begin_sign_in(request: Request) -> dict[str, object]:
        """Capture guest data before redirecting to the identity provider."""
        orchestrator = _orchestrator(request)
        orchestrator.begin_sign_in()
        return _state_payload(orchestrator)

    @app.post("/session/authenticated")
    async def complete_sign_in(
        body: SignInRequest, request: Request
    ) -> dict[str, object]:
        """Load or migrate data for the signed-in identity."""
        orchestrator = _orchestrator(request)
        await orchestrator.complete_sign_in(body.user_id)
        logger.info("Signed in user %s", body.user_id)
        return _state_payload(orchestrator)

    @app.post("/session/sign-out")
    async def sign_out(request: Request) -> dict[str, object]:
        """Forget the identity and all local data."""
        orchestrator = _orchestrator(request)
        orchestrator.sign_out()
        return _state_payload(orchestrator)

    @app.post("/profile", status_code=status.HTTP_201_CREATED)
    async def create_profile(profile: Profile, request: Request) -> dict[str, object]:
        """Create the profile and its first workout plan."""
        orchestrator = _orchestrator(request)
        await orchestrator.create_profile(profile)
        return _state_payload(orchestrator)

    @app.post("/meals", status_code=status.HTTP_201_CREATED)
    async def log_meal_photo(
        body: MealPhotoRequest, request: Request
    ) -> dict[str, object]:
        """Analyze a meal photo and log the result."""
        try:
            image_bytes = base64.b64decode(body.image_base64, validate=True)
        except binascii.Error as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="imageBase64 is not valid base64",
            ) from exc
        meal = await _orchestrator(request).log_meal_photo(
            image_bytes,
            body.meal_type,
            day=body.day,
            details=body.details,
            image_url=body.image_url,
        )
        return {"meal": meal.model_dump(mode="json", by_alias=True)}

    @app.post("/logs/{day}/meals", status_code=status.HTTP_201_CREATED)
    async def add_meal(day: date, meal: Meal, request: Request) -> dict[str, object]:
        """Add an already analyzed meal to a day."""
        log = _orchestrator(request).add_meal(meal, day)
        return {"log": log.model_dump(mode="json", by_alias=True)}

    @app.post("/weight", status_code=status.HTTP_201_CREATED)
    async def add_weight(body: WeightRequest, request: Request) -> dict[str, object]:
        """Record a weight entry."""
        orchestrator = _orchestrator(request)
        orchestrator.add_weight_entry(body.weight, body.day)
        return _state_payload(orchestrator)

    @app.post("/plan/regenerate")
    async def regenerate_plan(request: Request) -> dict[str, object]:
        """Regenerate the workout plan; failures show up as dashboardError."""
        orchestrator = _orchestrator(request)
        await orchestrator.regenerate_plan()
        return _state_payload(orchestrator)

    @app.put("/plan")
    async def replace_plan(plan: WorkoutPlan, request: Request) -> dict[str, object]:
        """Store a plan edited by the user."""
        orchestrator = _orchestrator(request)
        orchestrator.update_workout_plan(plan)
        return _state_payload(orchestrator)

    @app.patch(
        "/plan/days/{day_index}/sessions/{session_index}/workouts/{workout_index}"
    )
    async def edit_workout(
        day_index: int,
        session_index: int,
        workout_index: int,
        body: WorkoutEditRequest,
        request: Request,
    ) -> dict[str, object]:
        """Change sets, reps, notes or the name of one workout."""
        changes = body.model_dump(exclude_none=True)
        workout = _edit_plan(
            lambda: _orchestrator(request).edit_workout(
                day_index, session_index, workout_index, **changes
            )
        )
        return {"workout": workout.model_dump(mode="json", by_alias=True)}

    @app.patch(
        "/plan/days/{day_index}/sessions/{session_index}"
        "/workouts/{workout_index}/details/{detail_index}"
    )
    async def edit_workout_detail(  # noqa: PLR0913
        day_index: int,
        session_index: int,
        workout_index: int,
        detail_index: int,
        body: DetailEditRequest,
        request: Request,
    ) -> dict[str, object]:
        """Change one detail value of a workout."""
        workout = _edit_plan(
            lambda: _orchestrator(request).edit_workout_detail(
                day_index, session_index, workout_index, detail_index, body.value
            )
        )
        return {"workout": workout.model_dump(mode="json", by_alias=True)}

    @app.post("/reset")
    async def reset(request: Request) -> dict[str, object]:
        """Clear all user data."""
        orchestrator = _orchestrator(request)
        orchestrator.reset()
        return _state_payload(orchestrator)

    @app.post("/chats", status_code=status.HTTP_201_CREATED)
    async def create_chat(request: Request) -> dict[str, object]:
        """Start a new chat session."""
        session = _orchestrator(request).create_chat()
        return {"session": session.model_dump(mode="json", by_alias=True)}

    @app.delete("/chats/{session_id}")
    async def delete_chat(session_id: str, request: Request) -> dict[str, object]:
        """Delete a chat session."""
        orchestrator = _orchestrator(request)
        orchestrator.delete_chat(session_id)
        return _state_payload(orchestrator)

    @app.post("/chats/{session_id}/activate")
    async def switch_chat(session_id: str, request: Request) -> dict[str, object]:
        """Make a chat session active."""
        orchestrator = _orchestrator(request)
        try:
            orchestrator.switch_chat(session_id)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)
            ) from exc
        return _state_payload(orchestrator)

    @app.post("/chats/messages")
    async def send_message(
        body: ChatMessageRequest, request: Request
    ) -> StreamingResponse:
        """Send a message and stream the growing reply as server-sent events.

        The reply keeps streaming into the snapshot even if the client
        disconnects; reopen ``/state`` to see the result.
        """
        orchestrator = _orchestrator(request)
        session = orchestrator.active_chat_session
        if orchestrator.is_ai_replying:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="The assistant is still replying",
            )
        if session is None or orchestrator.snapshot.user_profile is None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Create a profile and a chat session first",
            )

        updates: asyncio.Queue[ChatMessage] = asyncio.Queue()
        # The reply placeholder follows the user message appended by this send.
        reply_index = len(session.history) + 1
        last_sent: ChatMessage | None = None

        def on_change(snapshot: Snapshot) -> None:
            nonlocal last_sent
            current = next(
                (s for s in snapshot.chat_sessions if s.id == session.id), None
            )
            if current is None or len(current.history) <= reply_index:
                return
            reply = current.history[reply_index]
            if reply != last_sent:
                last_sent = reply
                updates.put_nowait(reply)

        unsubscribe = orchestrator.subscribe(on_change)
        task = asyncio.create_task(
            orchestrator.send_message(body.message, body.use_web_search)
        )
        request.app.state.background_tasks.add(task)
        task.add_done_callback(request.app.state.background_tasks.discard)
        task.add_done_callback(lambda _: unsubscribe())

        return StreamingResponse(
            _reply_events(orchestrator, task, updates, unsubscribe),
            media_type="text/event-stream",
        )

    return app


def _orchestrator(request: Request) -> SessionOrchestrator:
    container: AppContainer = request.app.state.container
    return container.orchestrator


def _edit_plan(edit: Callable[[], Workout]) -> Workout:
    try:
        return edit()
    except IndexError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc


def _state_payload(orchestrator: SessionOrchestrator) -> dict[str, object]:
    goals = orchestrator.calorie_goals()
    projection = orchestrator.weight_projection()
    return {
        "identity": orchestrator.identity.value,
        "userId": orchestrator.user_id,
        "isAiReplying": orchestrator.is_ai_replying,
        "isGeneratingPlan": orchestrator.is_generating_plan,
        "replyState": orchestrator.reply_state.value,
        "dashboardError": orchestrator.dashboard_error,
        "needsWeightReminder": orchestrator.needs_weight_reminder(),
        "calorieGoals": asdict(goals) if goals else None,
        "weightProjection": _projection_payload(projection),
        "snapshot": orchestrator.snapshot.dump_document(),
    }


def _projection_payload(
    projection: WeightProjection | None,
) -> dict[str, object] | None:
    if projection is None:
        return None
    return {
        "status": projection.status.value,
        "weeklyRate": projection.weekly_rate,
        "weeksNeeded": projection.weeks_needed,
        "estimate": asdict(projection.estimate) if projection.estimate else None,
    }


async def _reply_events(
    orchestrator: SessionOrchestrator,
    task: "asyncio.Task[str | None]",
    updates: "asyncio.Queue[ChatMessage]",
    unsubscribe: Callable[[], None],
) -> AsyncIterator[str]:
    try:
        while True:
            getter = asyncio.ensure_future(updates.get())
            done, _ = await asyncio.wait(
                {getter, task}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter in done:
                yield _message_event(getter.result())
                continue
            getter.cancel()
            break
        while not updates.empty():
            yield _message_event(updates.get_nowait())
        message_id = task.result() if not task.cancelled() else None
        yield _sse(
            "done",
            {"messageId": message_id, "replyState": orchestrator.reply_state.value},
        )
    finally:
        unsubscribe()


def _message_event(message: ChatMessage) -> str:
    return _sse("message", message.model_dump(mode="json", by_alias=True))


def _sse(event: str, data: dict[str, object]) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"
