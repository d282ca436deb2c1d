"""Session orchestrator owning the live snapshot of one user's data.

All reads and writes of the snapshot go through ``SessionOrchestrator``.
Mutations are applied synchronously, observers are notified, and only the
changed top-level fields are handed to the save queue when signed in. Remote
storage is a best-effort mirror: a failed save never rolls back local state.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from uuid import uuid4

from calorie_wise.domain.errors import (
    ConfigurationError,
    InactiveSessionError,
    PersistenceError,
)
from calorie_wise.domain.goals import (
    CalorieGoals,
    WeightProjection,
    calculate_goals,
    needs_weight_reminder,
    project_weight,
)
from calorie_wise.domain.logs import (
    append_meal,
    build_meal,
    insert_weight_entry,
    record_weight,
)
from calorie_wise.domain.models import (
    ChatMessage,
    ChatMessagePart,
    ChatSession,
    DailyLog,
    GroundingSource,
    Meal,
    Profile,
    Snapshot,
    WeightEntry,
    Workout,
    WorkoutPlan,
)
from calorie_wise.domain.plan_edits import update_workout, update_workout_detail
from calorie_wise.services.ai_errors import CHAT, AIServiceError, classify_error
from calorie_wise.services.chat import ChatContext, ChatService
from calorie_wise.services.meal_analysis import MealAnalysisService
from calorie_wise.services.persistence import PersistenceGateway
from calorie_wise.services.save_queue import SaveQueue
from calorie_wise.services.workout_plans import WorkoutPlanService

_logger = logging.getLogger(__name__)

TITLE_LENGTH = 30
NEW_CHAT_TITLE = "New Chat"

_ALL_FIELDS = (
    "user_profile",
    "daily_logs",
    "workout_plan",
    "weight_log",
    "chat_sessions",
    "active_chat_session_id",
)

Observer = Callable[[Snapshot], None]


class IdentityState(str, Enum):
    """Who the snapshot belongs to."""

    UNAUTHENTICATED = "unauthenticated"
    GUEST_ACTIVE = "guest_active"
    AUTHENTICATED = "authenticated"


class ReplyState(str, Enum):
    """Progress of the most recent chat send."""

    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def derive_chat_title(message: str) -> str:
    """Truncate the first message of a session into its title."""
    if len(message) > TITLE_LENGTH:
        return f"{message[:TITLE_LENGTH]}..."
    return message


@dataclass
class SessionOrchestrator:
    """Single source of truth for the user's profile, logs, plan and chats."""

    meal_analysis: MealAnalysisService
    workout_plans: WorkoutPlanService
    chat: ChatService
    gateway: PersistenceGateway | None = None
    clock: Callable[[], datetime] = _utcnow
    identity: IdentityState = field(default=IdentityState.UNAUTHENTICATED, init=False)
    user_id: str | None = field(default=None, init=False)
    is_ai_replying: bool = field(default=False, init=False)
    is_generating_plan: bool = field(default=False, init=False)
    dashboard_error: str | None = field(default=None, init=False)
    reply_state: ReplyState = field(default=ReplyState.IDLE, init=False)
    _snapshot: Snapshot = field(default_factory=Snapshot, init=False)
    _guest_capture: Snapshot | None = field(default=None, init=False)
    _observers: list[Observer] = field(default_factory=list, init=False)
    _save_queue: SaveQueue | None = field(default=None, init=False)
    _generation: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        if self.gateway is not None:
            self._save_queue = SaveQueue(self.gateway)

    @property
    def snapshot(self) -> Snapshot:
        """Return the current immutable snapshot."""
        return self._snapshot

    @property
    def active_chat_session(self) -> ChatSession | None:
        """Return the active chat session, if any."""
        return _find_session(self._snapshot, self._snapshot.active_chat_session_id)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Call ``observer`` with every new snapshot; returns an unsubscribe hook."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    async def flush(self) -> None:
        """Wait for all scheduled saves to finish."""
        if self._save_queue is not None:
            await self._save_queue.flush()

    # Identity transitions

    def continue_as_guest(self) -> None:
        """Start an unsynced guest session with an empty snapshot."""
        self._next_generation()
        self.identity = IdentityState.GUEST_ACTIVE
        self.user_id = None
        self._guest_capture = None
        self._set_snapshot(Snapshot())

    def begin_sign_in(self) -> None:
        """Capture guest data before the sign-in flow leaves this client."""
        if (
            self.identity == IdentityState.GUEST_ACTIVE
            and self._snapshot.user_profile is not None
        ):
            self._guest_capture = self._snapshot
        else:
            self._guest_capture = None

    async def complete_sign_in(self, user_id: str) -> None:
        """Resolve the snapshot for a newly authenticated identity.

        Stored data with a profile always wins. Otherwise guest data captured
        by ``begin_sign_in`` is migrated to the identity, else the snapshot
        starts empty so the user goes through setup.
        """
        if self.gateway is None:
            raise ConfigurationError(
                "Persistence is not configured. "
                "Set SUPABASE_URL and SUPABASE_SERVICE_KEY to enable sign-in."
            )
        captured, self._guest_capture = self._guest_capture, None
        generation = self._next_generation()

        load_failed = False
        try:
            stored = await asyncio.to_thread(self.gateway.load, user_id)
        except PersistenceError:
            _logger.exception("Failed to load stored data for user %s", user_id)
            stored = None
            load_failed = True
        if generation != self._generation:
            return
        self.identity = IdentityState.AUTHENTICATED
        self.user_id = user_id

        if stored is not None and stored.user_profile is not None:
            self._set_snapshot(stored)
            return
        if captured is None:
            self._set_snapshot(Snapshot())
            return
        if load_failed:
            _logger.warning(
                "Keeping guest data for user %s locally; stored data is unknown",
                user_id,
            )
        else:
            try:
                await asyncio.to_thread(
                    self.gateway.save_merge, user_id, captured.dump_document()
                )
            except PersistenceError:
                _logger.exception("Failed to migrate guest data for user %s", user_id)
            if generation != self._generation:
                return
        self._set_snapshot(captured)

    def sign_out(self) -> None:
        """Forget the identity and every piece of user data."""
        self._next_generation()
        self.identity = IdentityState.UNAUTHENTICATED
        self.user_id = None
        self._guest_capture = None
        self.dashboard_error = None
        self._set_snapshot(Snapshot())

    # Profile and plan

    async def create_profile(self, profile: Profile) -> Snapshot:
        """Generate a plan for a new profile and commit the initial snapshot.

        Raises AIServiceError when the plan cannot be generated; the snapshot
        is left untouched in that case. Raises InactiveSessionError when the
        identity changed while the plan was being generated.
        """
        self._require_active()
        generation = self._generation
        self.is_generating_plan = True
        try:
            plan = await self.workout_plans.generate(profile)
        finally:
            self.is_generating_plan = False
        self._require_same_session(generation)
        snapshot = Snapshot(
            user_profile=profile,
            workout_plan=plan,
            weight_log=[
                WeightEntry(
                    date=profile.registration_date.date(), weight=profile.weight
                )
            ],
        )
        self._commit(snapshot, *_ALL_FIELDS)
        return snapshot

    async def regenerate_plan(self) -> WorkoutPlan | None:
        """Replace the plan with a fresh one; failures go to ``dashboard_error``."""
        profile = self._snapshot.user_profile
        if profile is None:
            return None
        generation = self._generation
        self.is_generating_plan = True
        self.dashboard_error = None
        try:
            plan = await self.workout_plans.generate(profile)
        except AIServiceError as exc:
            if generation != self._generation:
                return None
            _logger.error("Failed to regenerate workout plan: %s", exc.message)
            self.dashboard_error = exc.message
            self._notify()
            return None
        finally:
            self.is_generating_plan = False
        if generation != self._generation:
            _logger.info("Dropping a workout plan generated for a previous identity")
            return None
        self._commit(
            self._snapshot.model_copy(update={"workout_plan": plan}), "workout_plan"
        )
        return plan

    def clear_dashboard_error(self) -> None:
        """Dismiss the dashboard error banner."""
        self.dashboard_error = None
        self._notify()

    def update_workout_plan(self, plan: WorkoutPlan) -> None:
        """Store a plan edited by the user as-is."""
        self._require_active()
        self._commit(
            self._snapshot.model_copy(update={"workout_plan": plan}), "workout_plan"
        )

    def edit_workout(
        self,
        day_index: int,
        session_index: int,
        workout_index: int,
        **changes: object,
    ) -> Workout:
        """Change fields of one workout in the current plan."""
        plan = self._require_plan()
        updated = update_workout(
            plan, day_index, session_index, workout_index, **changes
        )
        self.update_workout_plan(updated)
        return (
            updated.weekly_schedule[day_index]
            .sessions[session_index]
            .workouts[workout_index]
        )

    def edit_workout_detail(  # noqa: PLR0913
        self,
        day_index: int,
        session_index: int,
        workout_index: int,
        detail_index: int,
        value: str,
    ) -> Workout:
        """Change one detail value of a workout in the current plan."""
        plan = self._require_plan()
        updated = update_workout_detail(
            plan, day_index, session_index, workout_index, detail_index, value
        )
        self.update_workout_plan(updated)
        return (
            updated.weekly_schedule[day_index]
            .sessions[session_index]
            .workouts[workout_index]
        )

    # Logs

    def add_meal(self, meal: Meal, day: date) -> DailyLog:
        """Append a meal to the log for ``day`` and refresh its totals."""
        self._require_active()
        logs = append_meal(self._snapshot.daily_logs, meal, day)
        self._commit(
            self._snapshot.model_copy(update={"daily_logs": logs}), "daily_logs"
        )
        return next(log for log in logs if log.date == day)

    async def log_meal_photo(  # noqa: PLR0913
        self,
        image_bytes: bytes,
        meal_type: str,
        day: date | None = None,
        details: str | None = None,
        image_url: str | None = None,
    ) -> Meal:
        """Analyze a meal photo and add the resulting meal.

        Raises AIServiceError when the photo cannot be analyzed.
        """
        self._require_active()
        generation = self._generation
        analysis = await self.meal_analysis.analyze(image_bytes, meal_type, details)
        self._require_same_session(generation)
        meal = build_meal(analysis, meal_type, self.clock(), image_url=image_url)
        self.add_meal(meal, day or self.today())
        return meal

    def add_weight_entry(self, weight: float, day: date) -> list[WeightEntry]:
        """Record a weight; only today's weight changes the profile weight."""
        self._require_active()
        if weight <= 0:
            raise ValueError("weight must be positive")
        snapshot = self._snapshot
        weight_log = insert_weight_entry(
            snapshot.weight_log, WeightEntry(date=day, weight=weight)
        )
        profile = snapshot.user_profile
        if profile is not None and day == self.today():
            profile = profile.model_copy(update={"weight": weight})
        logs = record_weight(snapshot.daily_logs, weight, day)
        self._commit(
            snapshot.model_copy(
                update={
                    "weight_log": weight_log,
                    "user_profile": profile,
                    "daily_logs": logs,
                }
            ),
            "weight_log",
            "user_profile",
            "daily_logs",
        )
        return weight_log

    def reset(self) -> None:
        """Clear all data locally and, when signed in, in the store."""
        self._require_active()
        self.dashboard_error = None
        self._commit(Snapshot(), *_ALL_FIELDS)

    # Derived views

    def today(self) -> date:
        """Return the current calendar date."""
        return self.clock().date()

    def log_for(self, day: date) -> DailyLog | None:
        """Return the daily log for ``day``, if any."""
        return next((log for log in self._snapshot.daily_logs if log.date == day), None)

    def calorie_goals(self) -> CalorieGoals | None:
        """Return energy targets for the current profile."""
        profile = self._snapshot.user_profile
        return calculate_goals(profile) if profile else None

    def weight_projection(self) -> WeightProjection | None:
        """Return the projected pace toward the target weight."""
        profile = self._snapshot.user_profile
        if profile is None:
            return None
        return project_weight(profile, self._snapshot.weight_log)

    def needs_weight_reminder(self) -> bool:
        """Return True when the user has not weighed in for a week."""
        return needs_weight_reminder(self._snapshot.weight_log, self.today())

    # Chat sessions

    def create_chat(self) -> ChatSession:
        """Start a new chat session and make it active."""
        self._require_active()
        session = ChatSession(
            id=f"chat_{uuid4().hex}",
            title=NEW_CHAT_TITLE,
            created_at=self.clock(),
        )
        self._commit(
            self._snapshot.model_copy(
                update={
                    "chat_sessions": [session, *self._snapshot.chat_sessions],
                    "active_chat_session_id": session.id,
                }
            ),
            "chat_sessions",
            "active_chat_session_id",
        )
        return session

    def delete_chat(self, session_id: str) -> None:
        """Delete a session; the first remaining one becomes active if needed."""
        self._require_active()
        sessions = [s for s in self._snapshot.chat_sessions if s.id != session_id]
        active_id = self._snapshot.active_chat_session_id
        if active_id == session_id:
            active_id = sessions[0].id if sessions else None
        self._commit(
            self._snapshot.model_copy(
                update={"chat_sessions": sessions, "active_chat_session_id": active_id}
            ),
            "chat_sessions",
            "active_chat_session_id",
        )

    def switch_chat(self, session_id: str) -> None:
        """Make another existing session active."""
        self._require_active()
        if _find_session(self._snapshot, session_id) is None:
            raise ValueError(f"Unknown chat session: {session_id}")
        self._commit(
            self._snapshot.model_copy(update={"active_chat_session_id": session_id}),
            "active_chat_session_id",
        )

    async def send_message(self, text: str, use_web_search: bool = False) -> str | None:
        """Send a message in the active session and stream the reply into it.

        Returns the id of the model message that received the reply, or None
        when the send was ignored. Failures are written into that message
        instead of being raised.
        """
        message = text.strip()
        profile = self._snapshot.user_profile
        session = self.active_chat_session
        if self.is_ai_replying:
            _logger.warning("Ignoring chat message while a reply is in progress")
            return None
        if not message or profile is None or session is None:
            _logger.warning("Ignoring chat message without profile or active session")
            return None

        now = self.clock()
        user_message = ChatMessage(
            id=f"user_{uuid4().hex}",
            role="user",
            parts=[ChatMessagePart(text=message)],
            timestamp=now,
        )
        placeholder = ChatMessage(
            id=f"model_{uuid4().hex}",
            role="model",
            parts=[ChatMessagePart(text="")],
            timestamp=now,
        )
        prior_history = session.history
        title = derive_chat_title(message) if not prior_history else session.title
        self.reply_state = ReplyState.SENDING
        self.is_ai_replying = True
        self._update_session(
            session.id,
            lambda current: current.model_copy(
                update={
                    "title": title,
                    "history": [*current.history, user_message, placeholder],
                }
            ),
        )

        context = ChatContext(
            profile=profile,
            daily_logs=self._snapshot.daily_logs,
            weight_log=self._snapshot.weight_log,
            workout_plan=self._snapshot.workout_plan,
            today=self.today(),
        )
        reply = ""
        grounding: list[GroundingSource] | None = None
        try:
            self.reply_state = ReplyState.STREAMING
            async for delta in self.chat.stream_reply(
                context, prior_history, message, use_web_search
            ):
                reply += delta.text
                if delta.grounding is not None:
                    grounding = delta.grounding
                self._patch_message(session.id, placeholder.id, reply, grounding)
            self.reply_state = ReplyState.SUCCEEDED
        except Exception as exc:
            error = classify_error(exc, CHAT)
            self._patch_message(
                session.id, placeholder.id, f"Error: {error.message}", grounding
            )
            self.reply_state = ReplyState.FAILED
        finally:
            self.is_ai_replying = False
            self._persist("chat_sessions")
            self._notify()
        return placeholder.id

    # Internals

    def _require_active(self) -> None:
        if self.identity == IdentityState.UNAUTHENTICATED:
            raise InactiveSessionError("Sign in or continue as a guest first")

    def _require_same_session(self, generation: int) -> None:
        if generation != self._generation:
            raise InactiveSessionError("The session changed while the request ran")

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _require_plan(self) -> WorkoutPlan:
        self._require_active()
        plan = self._snapshot.workout_plan
        if plan is None:
            raise ValueError("There is no workout plan to edit")
        return plan

    def _patch_message(
        self,
        session_id: str,
        message_id: str,
        text: str,
        grounding: list[GroundingSource] | None,
    ) -> None:
        def patch(session: ChatSession) -> ChatSession:
            history = [
                message.model_copy(
                    update={
                        "parts": [ChatMessagePart(text=text)],
                        "grounding": grounding or message.grounding,
                    }
                )
                if message.id == message_id
                else message
                for message in session.history
            ]
            return session.model_copy(update={"history": history})

        self._update_session(session_id, patch)

    def _update_session(
        self, session_id: str, change: Callable[[ChatSession], ChatSession]
    ) -> None:
        # Always start from the latest snapshot: other intents may have run
        # while a reply was streaming.
        snapshot = self._snapshot
        sessions = [
            change(session) if session.id == session_id else session
            for session in snapshot.chat_sessions
        ]
        self._set_snapshot(snapshot.model_copy(update={"chat_sessions": sessions}))

    def _commit(self, snapshot: Snapshot, *changed: str) -> None:
        self._set_snapshot(snapshot)
        self._persist(*changed)

    def _persist(self, *changed: str) -> None:
        if (
            self.identity != IdentityState.AUTHENTICATED
            or self.user_id is None
            or self._save_queue is None
            or not changed
        ):
            return
        self._save_queue.submit(self.user_id, self._snapshot.dump_fields(*changed))

    def _set_snapshot(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        self._notify()

    def _notify(self) -> None:
        for observer in list(self._observers):
            try:
                observer(self._snapshot)
            except Exception:
                _logger.exception("Snapshot observer failed")


def _find_session(snapshot: Snapshot, session_id: str | None) -> ChatSession | None:
    if session_id is None:
        return None
    return next((s for s in snapshot.chat_sessions if s.id == session_id), None)
