"""Path-based updates for workout plans.

Each helper copies only the objects along the edited path; untouched days,
sessions and workouts are shared with the original plan.
"""

from calorie_wise.domain.models import (
    DailyWorkout,
    Workout,
    WorkoutDetail,
    WorkoutPlan,
    WorkoutSession,
)

_EDITABLE_WORKOUT_FIELDS = {"exercise", "sets", "reps", "notes", "image_url"}


def _replace_at(items: list, index: int, value: object) -> list:
    if not 0 <= index < len(items):
        raise IndexError(f"index {index} out of range for {len(items)} items")
    return [*items[:index], value, *items[index + 1 :]]


def _workout_at(
    plan: WorkoutPlan, day_index: int, session_index: int, workout_index: int
) -> tuple[DailyWorkout, WorkoutSession, Workout]:
    day = plan.weekly_schedule[day_index]
    session = day.sessions[session_index]
    return day, session, session.workouts[workout_index]


def replace_workout(
    plan: WorkoutPlan,
    day_index: int,
    session_index: int,
    workout_index: int,
    workout: Workout,
) -> WorkoutPlan:
    """Return a plan with one workout replaced."""
    day, session, _ = _workout_at(plan, day_index, session_index, workout_index)
    session = session.model_copy(
        update={"workouts": _replace_at(session.workouts, workout_index, workout)}
    )
    day = day.model_copy(
        update={"sessions": _replace_at(day.sessions, session_index, session)}
    )
    return plan.model_copy(
        update={"weekly_schedule": _replace_at(plan.weekly_schedule, day_index, day)}
    )


def update_workout(
    plan: WorkoutPlan,
    day_index: int,
    session_index: int,
    workout_index: int,
    **changes: object,
) -> WorkoutPlan:
    """Return a plan with fields of one workout changed."""
    unknown = set(changes) - _EDITABLE_WORKOUT_FIELDS
    if unknown:
        raise ValueError(f"Cannot edit workout fields: {sorted(unknown)}")
    _, _, workout = _workout_at(plan, day_index, session_index, workout_index)
    return replace_workout(
        plan,
        day_index,
        session_index,
        workout_index,
        workout.model_copy(update=changes),
    )


def update_workout_detail(  # noqa: PLR0913
    plan: WorkoutPlan,
    day_index: int,
    session_index: int,
    workout_index: int,
    detail_index: int,
    value: str,
) -> WorkoutPlan:
    """Return a plan with one detail value of a workout changed."""
    _, _, workout = _workout_at(plan, day_index, session_index, workout_index)
    detail = workout.details[detail_index]
    details = _replace_at(
        workout.details,
        detail_index,
        WorkoutDetail(name=detail.name, value=value),
    )
    return replace_workout(
        plan,
        day_index,
        session_index,
        workout_index,
        workout.model_copy(update={"details": details}),
    )
