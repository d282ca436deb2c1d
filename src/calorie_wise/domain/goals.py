"""Energy targets and weight trend projections."""

from dataclasses import dataclass
from datetime import date
from enum import Enum

from calorie_wise.domain.models import Goal, Profile, WeightEntry

_CM_PER_INCH = 2.54
_CALORIE_ADJUSTMENT = 500
_PROJECTION_WINDOW = 5
_MIN_PROJECTION_DAYS = 7
_FLAT_WEEKLY_RATE = 0.01
_WEEKS_PER_MONTH = 4.345
_WEEKS_PER_YEAR = 52
_REMINDER_DAYS = 7


@dataclass(frozen=True)
class CalorieGoals:
    """Daily energy and macronutrient targets."""

    bmr: int
    target_calories: int
    target_protein: int
    target_carbs: int
    target_fat: int


class ProjectionStatus(str, Enum):
    """Outcome of a weight trend projection."""

    GOAL_REACHED = "goal_reached"
    OFF_PACE = "off_pace"
    ON_TRACK = "on_track"


@dataclass(frozen=True)
class TimeEstimate:
    """Rounded time remaining in the most readable unit."""

    amount: int
    unit: str


@dataclass(frozen=True)
class WeightProjection:
    """Projected pace toward the target weight."""

    status: ProjectionStatus
    weekly_rate: float | None = None
    weeks_needed: float | None = None
    estimate: TimeEstimate | None = None


def calculate_goals(profile: Profile) -> CalorieGoals:
    """Compute BMR (Mifflin-St Jeor), calorie target and a 40/30/30 macro split."""
    height_cm = profile.height * _CM_PER_INCH
    bmr = 10 * profile.weight + 6.25 * height_cm - 5 * profile.age
    bmr += 5 if profile.sex == "male" else -161
    tdee = bmr * profile.activity_level.value

    if profile.goal == Goal.LOSE:
        target = tdee - _CALORIE_ADJUSTMENT
    elif profile.goal == Goal.GAIN:
        target = tdee + _CALORIE_ADJUSTMENT
    else:
        target = tdee

    return CalorieGoals(
        bmr=round(bmr),
        target_calories=round(target),
        target_protein=round(target * 0.30 / 4),
        target_carbs=round(target * 0.40 / 4),
        target_fat=round(target * 0.30 / 9),
    )


def project_weight(
    profile: Profile, weight_log: list[WeightEntry]
) -> WeightProjection | None:
    """Project when the target weight is reached from the last five entries.

    Returns None when the goal is maintenance or there is not enough history
    (fewer than five entries, or spanning less than a week).
    """
    if profile.goal == Goal.MAINTAIN or len(weight_log) < _PROJECTION_WINDOW:
        return None

    remaining = profile.target_weight - profile.weight
    if (profile.goal == Goal.LOSE and remaining >= 0) or (
        profile.goal == Goal.GAIN and remaining <= 0
    ):
        return WeightProjection(status=ProjectionStatus.GOAL_REACHED)

    window = weight_log[-_PROJECTION_WINDOW:]
    first, last = window[0], window[-1]
    days = (last.date - first.date).days
    if days < _MIN_PROJECTION_DAYS:
        return None

    weekly_rate = (last.weight - first.weight) / days * 7
    if abs(weekly_rate) < _FLAT_WEEKLY_RATE:
        return WeightProjection(
            status=ProjectionStatus.OFF_PACE, weekly_rate=weekly_rate
        )
    if (profile.goal == Goal.LOSE and weekly_rate >= 0) or (
        profile.goal == Goal.GAIN and weekly_rate <= 0
    ):
        return WeightProjection(
            status=ProjectionStatus.OFF_PACE, weekly_rate=weekly_rate
        )

    weeks_needed = abs(remaining / weekly_rate)
    return WeightProjection(
        status=ProjectionStatus.ON_TRACK,
        weekly_rate=weekly_rate,
        weeks_needed=weeks_needed,
        estimate=_time_estimate(weeks_needed),
    )


def needs_weight_reminder(weight_log: list[WeightEntry], today: date) -> bool:
    """Return True when no weight was logged during the last week."""
    if not weight_log:
        return True
    return abs((today - weight_log[-1].date).days) >= _REMINDER_DAYS


def _time_estimate(weeks: float) -> TimeEstimate:
    if weeks < 8:
        amount = round(weeks)
        return TimeEstimate(amount=amount, unit="week" if amount == 1 else "weeks")
    if weeks < _WEEKS_PER_YEAR:
        amount = round(weeks / _WEEKS_PER_MONTH)
        return TimeEstimate(amount=amount, unit="month" if amount == 1 else "months")
    amount = round(weeks / _WEEKS_PER_YEAR)
    return TimeEstimate(amount=amount, unit="year" if amount == 1 else "years")
