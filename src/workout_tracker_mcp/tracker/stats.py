"""Workout history statistics."""

from datetime import date, datetime, timedelta

from pydantic import BaseModel

from workout_tracker_mcp.tracker.models import EquipmentExercise, Workout, WorkoutType

RANGE_DAYS = (7, 30, 90, 365)


class Reminder(BaseModel):
    """Nudge shown based on days since the last workout."""
    kind: str
    message: str
    sub_message: str = ""
    show: bool = True


class HistoryStats(BaseModel):
    """Aggregates over completed workouts in a date range."""
    range_days: int | None = None
    workout_count: int = 0
    streak: int = 0
    total_volume: float = 0
    average_duration_minutes: int = 0
    by_type: dict[str, int] = {}
    days_since_last: int | None = None


def total_volume(workout: Workout) -> float:
    """Sum of weight x reps over equipment exercises."""
    volume = 0.0
    for exercise in workout.exercises:
        if not isinstance(exercise, EquipmentExercise):
            continue
        weight = exercise.actual_weight if exercise.actual_weight is not None else exercise.weight
        if exercise.actual_reps is not None:
            reps = sum(exercise.actual_reps)
        else:
            reps = exercise.target_reps * exercise.completed_sets
        volume += weight * reps
    return volume


def format_duration(start: datetime, end: datetime | None = None) -> str:
    if end is None:
        return "0m"
    minutes = int((end - start).total_seconds() // 60)
    if minutes < 60:
        return f"{minutes}m"
    return f"{minutes // 60}h {minutes % 60}m"


def _completed(workouts: list[Workout]) -> list[Workout]:
    return [w for w in workouts if w.completed]


def _today(today: date | None) -> date:
    return today if today is not None else date.today()


def days_since_last_workout(workouts: list[Workout], today: date | None = None) -> int | None:
    completed = _completed(workouts)
    if not completed:
        return None
    last = max(w.date for w in completed)
    return (_today(today) - last.date()).days


def workout_streak(workouts: list[Workout], today: date | None = None) -> int:
    """Completed workouts in an unbroken run of days ending today or yesterday.

    Every workout counts, so two sessions on one day add two.
    """
    days = sorted((w.date.date() for w in _completed(workouts)), reverse=True)
    if not days:
        return 0
    if (_today(today) - days[0]).days > 1:
        return 0

    streak = 1
    for current, previous in zip(days, days[1:]):
        if (current - previous).days > 1:
            break
        streak += 1
    return streak


def days_since_previous_of_type(workouts: list[Workout], workout: Workout) -> int | None:
    """Whole days between a workout and the completed one of its type before it."""
    earlier = [
        w.date for w in _completed(workouts) if w.type == workout.type and w.date < workout.date
    ]
    if not earlier:
        return None
    return (workout.date - max(earlier)).days


def workouts_in_range(
    workouts: list[Workout], days: int | None = 30, today: date | None = None
) -> list[Workout]:
    completed = _completed(workouts)
    if days is None:
        return completed
    cutoff = _today(today) - timedelta(days=days)
    return [w for w in completed if w.date.date() >= cutoff]


def workouts_by_type(workouts: list[Workout]) -> dict[str, int]:
    counts = {t.value: 0 for t in WorkoutType}
    for workout in workouts:
        counts[workout.type.value] += 1
    return counts


def average_duration_minutes(workouts: list[Workout]) -> int:
    durations = [
        (w.end_time - w.start_time).total_seconds() / 60 for w in workouts if w.end_time
    ]
    if not durations:
        return 0
    return round(sum(durations) / len(durations))


def reminder(days_since: int | None) -> Reminder:
    if days_since is None:
        return Reminder(
            kind="welcome",
            message="Welcome! Start your fitness journey today!",
            sub_message="Your first workout awaits",
        )
    if days_since == 0:
        return Reminder(
            kind="great",
            message="Great job! You worked out today!",
            sub_message="Keep up the amazing work",
        )
    if days_since == 1:
        return Reminder(kind="ok", message="", show=False)
    if days_since <= 3:
        return Reminder(
            kind="gentle",
            message=f"{days_since} days since your last workout",
            sub_message="Ready to get back on track?",
        )
    if days_since <= 7:
        return Reminder(
            kind="warning",
            message=f"You haven't worked out for {days_since} days",
            sub_message="Don't break your momentum!",
        )
    return Reminder(
        kind="urgent",
        message=f"It's been {days_since} days since your last workout!",
        sub_message="Every journey starts with a single step. Let's go!",
    )


def summarize_history(
    workouts: list[Workout], days: int | None = 30, today: date | None = None
) -> HistoryStats:
    in_range = workouts_in_range(workouts, days, today)
    return HistoryStats(
        range_days=days,
        workout_count=len(in_range),
        streak=workout_streak(workouts, today),
        total_volume=sum(total_volume(w) for w in in_range),
        average_duration_minutes=average_duration_minutes(in_range),
        by_type=workouts_by_type(in_range),
        days_since_last=days_since_last_workout(workouts, today),
    )
