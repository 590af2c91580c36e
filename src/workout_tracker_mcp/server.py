"""Workout Tracker MCP Server."""

import logging
import sys
from datetime import date, datetime, timedelta, timezone

from mcp.server.fastmcp import FastMCP

from workout_tracker_mcp.config import Settings
from workout_tracker_mcp.tracker import (
    CardioExercise,
    ChecklistRepository,
    EquipmentExercise,
    KeyValueStoreClient,
    LocalCache,
    Phase,
    SyncedStore,
    ValidationFailure,
    Workout,
    WorkoutRepository,
    WorkoutSessionMachine,
    WorkoutType,
)
from workout_tracker_mcp.tracker.stats import (
    days_since_previous_of_type,
    format_duration,
    reminder,
    summarize_history,
)

logger = logging.getLogger(__name__)

mcp = FastMCP("workout-tracker")


class TrackerApp:
    """Wires the store, repositories and session machine for one process."""

    def __init__(self, settings: Settings | None = None, transport=None):
        self.settings = settings
        self.transport = transport
        self.store: SyncedStore | None = None
        self.workouts: WorkoutRepository | None = None
        self.checklist: ChecklistRepository | None = None
        self.machine: WorkoutSessionMachine | None = None

    def ensure_started(self) -> WorkoutSessionMachine:
        if self.machine is not None:
            return self.machine
        settings = self.settings or Settings()
        client = KeyValueStoreClient(
            settings.storage_url, timeout=settings.timeout, transport=self.transport
        )
        self.store = SyncedStore(client, LocalCache(settings.cache_path))
        self.workouts = WorkoutRepository(self.store)
        self.checklist = ChecklistRepository(self.store)
        self.machine = WorkoutSessionMachine(self.workouts, self.checklist)
        logger.info("Workout tracker using storage at %s", settings.storage_url)
        return self.machine


app = TrackerApp()


def _format_exercise(exercise) -> str:
    mark = "[x]" if exercise.completed else "[ ]"
    if isinstance(exercise, EquipmentExercise):
        line = (
            f"{mark} **{exercise.name}** {exercise.weight:g}kg x {exercise.target_reps}"
            f" x {exercise.target_sets} ({exercise.completed_sets}/{exercise.target_sets} sets)"
        )
        if exercise.actual_reps:
            line += f" reps: {', '.join(str(r) for r in exercise.actual_reps)}"
    elif isinstance(exercise, CardioExercise):
        targets = []
        if exercise.target_distance:
            targets.append(f"{exercise.target_distance:g}km")
        if exercise.target_duration:
            targets.append(f"{exercise.target_duration:g}min")
        line = f"{mark} **{exercise.name}** {' / '.join(targets)}"
        if exercise.actual_distance:
            line += f" (done {exercise.actual_distance:g}km)"
    else:
        line = f"{mark} **{exercise.display_name}**"
        if exercise.actual_distance:
            line += f" (done {exercise.actual_distance:g})"
    return f"- {line} (id: {exercise.id})"


def _format_workout(workout: Workout, days_since_type: int | None = None) -> list[str]:
    date_str = workout.date.strftime("%Y-%m-%d")
    duration = f" ({format_duration(workout.start_time, workout.end_time)})" if workout.end_time else ""
    gap = f" (+{days_since_type} days)" if days_since_type is not None else ""
    lines = [
        f"## {workout.type.value}{gap} — {date_str}{duration}",
        f"{workout.completed_count}/{workout.total_count} exercises completed (id: {workout.id})",
    ]
    lines.extend(_format_exercise(e) for e in workout.exercises)
    return lines


def _status() -> str:
    machine = app.ensure_started()
    lines = [f"Phase: **{machine.phase.value}**"]
    if machine.context.past_mode:
        lines.append(f"Logging a past workout ({machine.context.duration_minutes} min)")

    if machine.phase is Phase.TYPE_SELECTION:
        lines.append("Choose a workout type: " + ", ".join(t.value for t in WorkoutType))
    elif machine.phase is Phase.CHECKLIST:
        lines.append("Before you go:")
        lines.extend(f"- {item}" for item in app.checklist.items())
    elif machine.phase is Phase.PAST_WORKOUT_SELECTION:
        candidates = machine.past_workout_candidates()
        lines.append(f"{len(candidates)} previous workouts of this type can be reused.")

    if machine.workout is not None and machine.phase is not Phase.TYPE_SELECTION:
        lines.append("")
        lines.extend(_format_workout(machine.workout))
        if machine.phase is Phase.PLANNING:
            lines.append(f"Ready to start: {'yes' if machine.can_start() else 'no'}")
        if machine.phase is Phase.ACTIVE:
            minutes = int(machine.elapsed().total_seconds() // 60)
            lines.append(f"Elapsed: {minutes}m | Streak: {machine.context.streak}")

    errors = app.store.sync_errors()
    if errors:
        lines.append("")
        lines.extend(f"Not yet saved to storage: {key} ({exc})" for key, exc in errors.items())
    return "\n".join(lines)


@mcp.tool()
async def session_status() -> str:
    """Show the current session phase, workout and any unsaved changes."""
    return _status()


@mcp.tool()
async def begin_session(past_workout: bool = False) -> str:
    """Start choosing a workout.

    Args:
        past_workout: True to log a workout that already happened on an earlier date.
    """
    app.ensure_started().begin(past_mode=past_workout)
    return _status()


@mcp.tool()
async def choose_workout_type(workout_type: str) -> str:
    """Pick the workout type: Pull, Push, Legs, Swim, Run (Gym) or Run (Outdoor)."""
    app.ensure_started().choose_type(workout_type)
    return _status()


@mcp.tool()
async def confirm_date(workout_date: str, duration_minutes: int | None = None) -> str:
    """Set the date of a past workout being logged.

    Args:
        workout_date: ISO date, e.g. 2024-05-01.
        duration_minutes: How long the workout took (default 60).
    """
    try:
        day = date.fromisoformat(workout_date)
    except ValueError:
        raise ValidationFailure(f"Not a valid date: {workout_date!r}") from None
    app.ensure_started().confirm_date(day, duration_minutes)
    return _status()


@mcp.tool()
async def continue_checklist() -> str:
    """Acknowledge the pre-workout checklist."""
    app.ensure_started().continue_checklist()
    return _status()


@mcp.tool()
async def list_past_workouts() -> str:
    """List previous workouts of the chosen type whose plan can be reused."""
    candidates = app.ensure_started().past_workout_candidates()
    if not candidates:
        return "No previous workouts of this type."
    lines = []
    for workout in candidates:
        lines.extend(_format_workout(workout))
        lines.append("")
    return "\n".join(lines)


@mcp.tool()
async def use_past_workout(workout_id: str) -> str:
    """Plan this session by copying the exercises of a previous workout."""
    app.ensure_started().pick_past_workout(workout_id)
    return _status()


@mcp.tool()
async def load_last_workout() -> str:
    """Plan this session from the most recent completed workout of the same type."""
    app.ensure_started().load_last_workout()
    return _status()


@mcp.tool()
async def skip_past_workout() -> str:
    """Plan this session from scratch."""
    app.ensure_started().skip_past_workout()
    return _status()


@mcp.tool()
async def add_equipment_exercise(name: str, weight: float, target_reps: int, target_sets: int) -> str:
    """Add a weighted exercise (kg) to a Pull, Push or Legs workout."""
    app.ensure_started().add_equipment(name, weight, target_reps, target_sets)
    return _status()


@mcp.tool()
async def add_cardio_exercise(
    name: str, target_distance_km: float | None = None, target_duration_min: float | None = None
) -> str:
    """Add a cardio exercise to a Pull, Push or Legs workout. Give a distance, a duration or both."""
    app.ensure_started().add_cardio(name, target_distance_km, target_duration_min)
    return _status()


@mcp.tool()
async def update_exercise(
    exercise_id: str,
    name: str | None = None,
    weight: float | None = None,
    target_reps: int | None = None,
    target_sets: int | None = None,
    target_distance: float | None = None,
    target_duration: float | None = None,
) -> str:
    """Edit the targets of a planned or active exercise. Omitted fields stay unchanged."""
    fields = {
        "name": name,
        "weight": weight,
        "target_reps": target_reps,
        "target_sets": target_sets,
        "target_distance": target_distance,
        "target_duration": target_duration,
    }
    app.ensure_started().update_exercise(
        exercise_id, **{k: v for k, v in fields.items() if v is not None}
    )
    return _status()


@mcp.tool()
async def remove_exercise(exercise_id: str) -> str:
    """Remove an exercise from the plan."""
    app.ensure_started().remove_exercise(exercise_id)
    return _status()


@mcp.tool()
async def set_target_distance(distance: float) -> str:
    """Set the target of a Swim (meters) or Run (km) workout."""
    app.ensure_started().set_target_distance(distance)
    return _status()


@mcp.tool()
async def set_duration(minutes: int) -> str:
    """Set how long a past workout took."""
    app.ensure_started().set_duration(minutes)
    return _status()


@mcp.tool()
async def start_workout() -> str:
    """Start tracking the planned workout (past workouts are logged as completed)."""
    machine = app.ensure_started()
    machine.start_workout()
    if machine.phase is Phase.SUMMARY:
        return _summary_text()
    return _status()


@mcp.tool()
async def complete_set(exercise_id: str, reps: int | None = None, weight: float | None = None) -> str:
    """Record one finished set of an equipment exercise.

    Args:
        exercise_id: The exercise id (from session_status).
        reps: Reps performed (defaults to the target).
        weight: Weight used in kg, if different from the plan.
    """
    app.ensure_started().complete_set(exercise_id, reps, weight)
    return _status()


@mcp.tool()
async def toggle_exercise(exercise_id: str) -> str:
    """Mark an exercise done, or not done."""
    app.ensure_started().toggle_complete(exercise_id)
    return _status()


@mcp.tool()
async def record_distance(exercise_id: str, distance: float, duration: float | None = None) -> str:
    """Record the distance achieved (and minutes, for cardio), completing the exercise."""
    app.ensure_started().record_distance(exercise_id, distance, duration)
    return _status()


@mcp.tool()
async def finish_workout(early: bool = False) -> str:
    """Finish the active workout.

    Args:
        early: Finish even though some exercises are not complete.
    """
    machine = app.ensure_started()
    if early:
        machine.finish_early()
    else:
        machine.finish()
    return _summary_text()


def _summary_text() -> str:
    summary = app.ensure_started().summary()
    workout = summary.workout
    lines = [
        f"# {workout.type.value} workout complete!",
        f"Duration: {summary.duration} | Exercises: {summary.progress}",
    ]
    if summary.total_volume > 0:
        lines.append(f"Total volume: {summary.total_volume:,.0f} kg")
    if summary.completed:
        lines.append("\n## Exercises Completed")
        lines.extend(_format_exercise(e) for e in summary.completed)
    if summary.skipped:
        lines.append("\n## Skipped Exercises")
        lines.extend(f"- {e.display_name}" for e in summary.skipped)
    return "\n".join(lines)


@mcp.tool()
async def close_summary() -> str:
    """Dismiss the workout summary."""
    app.ensure_started().close()
    return _status()


@mcp.tool()
async def cancel_workout() -> str:
    """Discard the current session without saving it to history."""
    app.ensure_started().cancel()
    return _status()


@mcp.tool()
async def get_history(since_days: int | None = None, limit: int = 20) -> str:
    """List completed workouts, newest first.

    Args:
        since_days: Only return workouts from the last N days. Omit for all workouts.
        limit: Maximum number of workouts to return (default 20).
    """
    app.ensure_started()
    history = app.workouts.workouts()
    workouts = [w for w in history if w.completed]
    if since_days is not None:
        cutoff = datetime.now(timezone.utc) - timedelta(days=since_days)
        workouts = [w for w in workouts if w.date >= cutoff]
    workouts = sorted(workouts, key=lambda w: w.date, reverse=True)[:limit]

    if not workouts:
        return "No workouts found."

    lines = []
    for workout in workouts:
        lines.extend(_format_workout(workout, days_since_previous_of_type(history, workout)))
        lines.append("")
    return "\n".join(lines)


@mcp.tool()
async def delete_workout(workout_id: str) -> str:
    """Permanently delete a workout from history."""
    app.ensure_started()
    if not app.workouts.delete(workout_id):
        return f"No workout with id {workout_id}."
    return f"Deleted workout {workout_id}."


@mcp.tool()
async def get_stats(range_days: int | None = 30) -> str:
    """Summarize training over the last 7, 30, 90 or 365 days (omit for all time)."""
    app.ensure_started()
    stats = summarize_history(app.workouts.workouts(), range_days)
    label = f"last {range_days} days" if range_days else "all time"
    lines = [
        f"# Stats ({label})",
        f"Workouts: {stats.workout_count} | Streak: {stats.streak} days",
        f"Total volume: {stats.total_volume:,.0f} kg | Average duration: {stats.average_duration_minutes}m",
    ]
    lines.extend(f"- {name}: {count}" for name, count in stats.by_type.items() if count)
    nudge = reminder(stats.days_since_last)
    if nudge.show:
        lines.append(f"\n{nudge.message} {nudge.sub_message}".rstrip())
    return "\n".join(lines)


def _checklist_text() -> str:
    items = app.checklist.items()
    if not items:
        return "The checklist is empty."
    return "\n".join(f"- {item}" for item in items)


@mcp.tool()
async def get_checklist() -> str:
    """Show the pre-workout checklist."""
    app.ensure_started()
    return _checklist_text()


@mcp.tool()
async def add_checklist_item(text: str) -> str:
    """Add an item to the pre-workout checklist."""
    app.ensure_started()
    app.checklist.add(text)
    return _checklist_text()


@mcp.tool()
async def remove_checklist_item(text: str) -> str:
    """Remove an item from the pre-workout checklist."""
    app.ensure_started()
    app.checklist.remove(text)
    return _checklist_text()


@mcp.tool()
async def reset_checklist() -> str:
    """Restore the default pre-workout checklist."""
    app.ensure_started()
    app.checklist.reset()
    return _checklist_text()


def main():
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level,
        stream=sys.stderr,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app.settings = settings
    mcp.run()


if __name__ == "__main__":
    main()
