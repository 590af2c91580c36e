"""Workout session state machine.

The machine walks one session through its phases::

    type-selection -> [date-selection] -> [checklist] -> past-workout-selection
        -> planning -> active -> summary -> type-selection

``date-selection`` only happens when logging a past workout, ``checklist``
only for live sessions with at least one checklist item. Past workouts skip
``active``: starting them fills in actual values from the targets and goes
straight to ``summary``. ``cancel`` returns to ``type-selection`` from
anywhere without touching history.

The in-progress workout lives in the repository's active slot. A machine
created while that slot holds a workout resumes into ``active``.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from pydantic import BaseModel, ValidationError

from workout_tracker_mcp.tracker.exceptions import DecodeError, InvalidTransition, ValidationFailure
from workout_tracker_mcp.tracker.models import (
    CardioExercise,
    EquipmentExercise,
    Exercise,
    RunExercise,
    SwimExercise,
    Workout,
    WorkoutType,
    clone_exercise,
    complete_from_targets,
    decode_workout,
)
from workout_tracker_mcp.tracker.repository import ChecklistRepository, WorkoutRepository
from workout_tracker_mcp.tracker.stats import format_duration, total_volume

logger = logging.getLogger(__name__)

DEFAULT_PAST_DURATION = 60


class Phase(str, Enum):
    TYPE_SELECTION = "type-selection"
    DATE_SELECTION = "date-selection"
    CHECKLIST = "checklist"
    PAST_WORKOUT_SELECTION = "past-workout-selection"
    PLANNING = "planning"
    ACTIVE = "active"
    SUMMARY = "summary"


class SessionContext(BaseModel):
    """Everything the machine knows about the current session."""
    past_mode: bool = False
    workout: Workout | None = None
    duration_minutes: int = DEFAULT_PAST_DURATION
    streak: int = 0
    last_completed_count: int = 0


class WorkoutSummary(BaseModel):
    """What the summary screen shows for a finished workout."""
    workout: Workout
    completed: list[Exercise]
    skipped: list[Exercise]
    duration: str
    total_volume: float

    @property
    def completed_count(self) -> int:
        return len(self.completed)

    @property
    def total_count(self) -> int:
        return len(self.completed) + len(self.skipped)

    @property
    def progress(self) -> str:
        return f"{self.completed_count}/{self.total_count}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(p) for p in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{field}: {message}" if field else message)
    return "; ".join(parts) or "invalid exercise"


class WorkoutSessionMachine:
    """Drives a single workout session from type selection to summary."""

    def __init__(
        self,
        workouts: WorkoutRepository,
        checklist: ChecklistRepository,
        clock: Callable[[], datetime] | None = None,
    ):
        self.workouts = workouts
        self.checklist = checklist
        self._clock = clock or _utcnow
        self.phase = Phase.TYPE_SELECTION
        self.context = SessionContext()
        self._resume(self.workouts.active_slot.value)
        self.workouts.active_slot.subscribe(self._resume)

    # --- helpers ---

    def _resume(self, document: dict | None) -> None:
        if self.phase is not Phase.TYPE_SELECTION or not document:
            return
        try:
            workout = decode_workout(document)
        except DecodeError as exc:
            logger.warning("Not resuming unreadable active workout: %s", exc)
            return
        self.context = SessionContext(
            workout=workout, last_completed_count=workout.completed_count
        )
        self._transition(Phase.ACTIVE)
        logger.info("Resumed %s workout %s", workout.type.value, workout.id)

    def _require(self, operation: str, *phases: Phase) -> None:
        if self.phase not in phases:
            raise InvalidTransition(operation, self.phase.value)

    def _transition(self, phase: Phase) -> None:
        logger.info("Session phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    @property
    def workout(self) -> Workout | None:
        return self.context.workout

    def _save(self, workout: Workout) -> Workout:
        self.context.workout = workout
        self.workouts.save_active(workout)
        return workout

    def _replace_exercises(self, exercises: list[Exercise]) -> Workout:
        return self._save(self.workout.model_copy(update={"exercises": exercises}))

    def _find(self, exercise_id: str) -> tuple[int, Exercise]:
        for index, exercise in enumerate(self.workout.exercises):
            if exercise.id == exercise_id:
                return index, exercise
        raise ValidationFailure(f"No exercise with id {exercise_id!r}")

    def _put(self, index: int, exercise: Exercise) -> Exercise:
        exercises = list(self.workout.exercises)
        exercises[index] = exercise
        self._replace_exercises(exercises)
        self._track_progress()
        return exercise

    def _check_variant(self, variant: str) -> None:
        if variant not in self.workout.type.exercise_types:
            raise ValidationFailure(
                f"{variant} exercises are not allowed in a {self.workout.type.value} workout"
            )

    def _track_progress(self) -> None:
        if self.phase is not Phase.ACTIVE:
            return
        count = self.workout.completed_count
        if count > self.context.last_completed_count:
            self.context.streak += 1
        self.context.last_completed_count = count

    # --- selection phases ---

    def begin(self, past_mode: bool = False) -> None:
        """Choose between a live session and logging a past workout."""
        self._require("begin a session", Phase.TYPE_SELECTION)
        self.context.past_mode = past_mode

    def choose_type(self, workout_type: WorkoutType | str) -> Workout:
        self._require("choose a workout type", Phase.TYPE_SELECTION)
        try:
            workout_type = WorkoutType(workout_type)
        except ValueError:
            raise ValidationFailure(f"Unknown workout type {workout_type!r}") from None

        now = self._clock()
        workout = Workout(type=workout_type, date=now, start_time=now)

        if self.context.past_mode:
            self._transition(Phase.DATE_SELECTION)
        elif self.checklist.items():
            self._transition(Phase.CHECKLIST)
        else:
            self._transition(Phase.PAST_WORKOUT_SELECTION)
        return self._save(workout)

    def confirm_date(self, day: date | None, duration_minutes: int | None = None) -> Workout:
        self._require("confirm a date", Phase.DATE_SELECTION)
        if day is None:
            raise ValidationFailure("Select the date of the workout")
        if isinstance(day, datetime):
            day = day.date()
        now = self._clock()
        if day > now.date():
            raise ValidationFailure("A past workout cannot be dated in the future")
        if duration_minutes is not None:
            self.set_duration(duration_minutes)

        start = datetime.combine(day, now.timetz())
        self._transition(Phase.PAST_WORKOUT_SELECTION)
        return self._save(self.workout.model_copy(update={"date": start, "start_time": start}))

    def continue_checklist(self) -> None:
        self._require("continue past the checklist", Phase.CHECKLIST)
        self._transition(Phase.PAST_WORKOUT_SELECTION)

    def past_workout_candidates(self) -> list[Workout]:
        """Completed workouts of the chosen type, newest first."""
        if self.workout is None:
            return []
        return self.workouts.completed_of_type(self.workout.type)

    def pick_past_workout(self, workout_id: str) -> Workout:
        self._require("reuse a past workout", Phase.PAST_WORKOUT_SELECTION)
        source = next((w for w in self.past_workout_candidates() if w.id == workout_id), None)
        if source is None:
            raise ValidationFailure(f"No completed {self.workout.type.value} workout {workout_id!r}")
        return self._load_plan(source)

    def load_last_workout(self) -> Workout:
        """Copy the plan of the newest completed workout of the chosen type.

        Available while choosing a past workout and on an empty plan.
        """
        self._require("load the last workout", Phase.PAST_WORKOUT_SELECTION, Phase.PLANNING)
        if self.phase is Phase.PLANNING and self.workout.exercises:
            raise ValidationFailure("The plan already has exercises")
        source = self.workouts.last_of_type(self.workout.type)
        if source is None:
            raise ValidationFailure(f"No previous {self.workout.type.value} workout found")
        return self._load_plan(source)

    def _load_plan(self, source: Workout) -> Workout:
        exercises = [clone_exercise(e) for e in source.exercises]
        if self.phase is not Phase.PLANNING:
            self._transition(Phase.PLANNING)
        logger.info("Loaded %d exercises from workout %s", len(exercises), source.id)
        return self._replace_exercises(exercises)

    def skip_past_workout(self) -> Workout:
        self._require("skip past workouts", Phase.PAST_WORKOUT_SELECTION)
        self._transition(Phase.PLANNING)
        return self._replace_exercises([])

    # --- planning ---

    def set_duration(self, minutes: int) -> None:
        self._require(
            "set the duration",
            Phase.DATE_SELECTION, Phase.PAST_WORKOUT_SELECTION, Phase.PLANNING,
        )
        if not self.context.past_mode:
            raise ValidationFailure("Duration is only entered when logging a past workout")
        if minutes is None or minutes <= 0:
            raise ValidationFailure("Duration must be a positive number of minutes")
        self.context.duration_minutes = int(minutes)

    def add_equipment(
        self, name: str, weight: float, target_reps: int, target_sets: int
    ) -> EquipmentExercise:
        self._require("add an exercise", Phase.PLANNING, Phase.ACTIVE)
        self._check_variant("equipment")
        try:
            exercise = EquipmentExercise(
                name=(name or "").strip(),
                weight=weight,
                target_reps=target_reps,
                target_sets=target_sets,
            )
        except ValidationError as exc:
            raise ValidationFailure(_validation_message(exc)) from exc
        self._replace_exercises([*self.workout.exercises, exercise])
        return exercise

    def add_cardio(
        self,
        name: str,
        target_distance: float | None = None,
        target_duration: float | None = None,
    ) -> CardioExercise:
        self._require("add an exercise", Phase.PLANNING, Phase.ACTIVE)
        self._check_variant("cardio")
        try:
            exercise = CardioExercise(
                name=(name or "").strip(),
                target_distance=target_distance,
                target_duration=target_duration,
            )
        except ValidationError as exc:
            raise ValidationFailure(_validation_message(exc)) from exc
        self._replace_exercises([*self.workout.exercises, exercise])
        return exercise

    def update_exercise(self, exercise_id: str, **fields) -> Exercise:
        self._require("edit an exercise", Phase.PLANNING, Phase.ACTIVE)
        index, exercise = self._find(exercise_id)
        fields.pop("id", None)
        if fields.pop("type", exercise.type) != exercise.type:
            raise ValidationFailure("The kind of an exercise cannot be changed")
        if isinstance(fields.get("name"), str):
            fields["name"] = fields["name"].strip()
        try:
            updated = type(exercise).model_validate({**exercise.model_dump(), **fields})
        except ValidationError as exc:
            raise ValidationFailure(_validation_message(exc)) from exc
        return self._put(index, updated)

    def remove_exercise(self, exercise_id: str) -> None:
        self._require("remove an exercise", Phase.PLANNING)
        self._find(exercise_id)
        self._replace_exercises([e for e in self.workout.exercises if e.id != exercise_id])

    def set_target_distance(self, distance: float) -> Exercise:
        """Set the single swim (meters) or run (km) target of the session."""
        self._require("set a target distance", Phase.PLANNING)
        workout_type = self.workout.type
        if workout_type.is_swim:
            variant = SwimExercise
        elif workout_type.is_run:
            variant = RunExercise
        else:
            raise ValidationFailure(f"{workout_type.value} workouts have no target distance")
        if distance is None or distance <= 0:
            raise ValidationFailure("Target distance must be greater than zero")

        existing = next((e for e in self.workout.exercises if isinstance(e, variant)), None)
        if existing is not None:
            exercise = variant(id=existing.id, target_distance=distance)
        else:
            exercise = variant(target_distance=distance)
        self._replace_exercises([exercise])
        return exercise

    def can_start(self) -> bool:
        if self.phase is not Phase.PLANNING or self.workout is None:
            return False
        workout_type = self.workout.type
        if workout_type.is_swim or workout_type.is_run:
            return any(
                isinstance(e, (SwimExercise, RunExercise)) and e.target_distance > 0
                for e in self.workout.exercises
            )
        return len(self.workout.exercises) > 0

    def start_workout(self) -> Workout:
        self._require("start the workout", Phase.PLANNING)
        if not self.can_start():
            if self.workout.type.is_strength:
                raise ValidationFailure("Add at least one exercise before starting")
            raise ValidationFailure("Set a target distance before starting")

        if self.context.past_mode:
            return self._auto_finish()

        workout = self.workout.model_copy(update={"start_time": self._clock()})
        self.context.last_completed_count = workout.completed_count
        self._transition(Phase.ACTIVE)
        return self._save(workout)

    def _auto_finish(self) -> Workout:
        start = self.workout.start_time
        workout = self.workout.model_copy(update={
            "exercises": [complete_from_targets(e) for e in self.workout.exercises],
            "end_time": start + timedelta(minutes=self.context.duration_minutes),
            "completed": True,
        })
        self.workouts.append(workout)
        self._transition(Phase.SUMMARY)
        return self._save(workout)

    # --- tracking ---

    @property
    def completed_count(self) -> int:
        return self.workout.completed_count if self.workout else 0

    @property
    def total_count(self) -> int:
        return self.workout.total_count if self.workout else 0

    def elapsed(self, now: datetime | None = None) -> timedelta:
        if self.workout is None:
            return timedelta(0)
        return (now or self._clock()) - self.workout.start_time

    def toggle_complete(self, exercise_id: str) -> Exercise:
        self._require("toggle an exercise", Phase.ACTIVE)
        index, exercise = self._find(exercise_id)
        return self._put(index, exercise.model_copy(update={"completed": not exercise.completed}))

    def complete_set(
        self, exercise_id: str, reps: int | None = None, weight: float | None = None
    ) -> EquipmentExercise:
        """Record one finished set; the exercise completes with its last set."""
        self._require("complete a set", Phase.ACTIVE)
        index, exercise = self._find(exercise_id)
        if not isinstance(exercise, EquipmentExercise):
            raise ValidationFailure(f"{exercise.display_name} is not tracked in sets")
        if exercise.completed_sets >= exercise.target_sets:
            raise ValidationFailure(f"All sets of {exercise.name} are already done")
        reps = exercise.target_reps if reps is None else reps
        if reps < 0:
            raise ValidationFailure("Reps cannot be negative")
        if weight is not None and weight < 0:
            raise ValidationFailure("Weight cannot be negative")

        completed_sets = exercise.completed_sets + 1
        update = {
            "completed_sets": completed_sets,
            "actual_reps": [*(exercise.actual_reps or []), reps],
        }
        if weight is not None:
            update["actual_weight"] = weight
        if completed_sets == exercise.target_sets:
            update["completed"] = True
        return self._put(index, exercise.model_copy(update=update))

    def record_distance(
        self, exercise_id: str, distance: float, duration: float | None = None
    ) -> Exercise:
        """Record the achieved distance (and cardio duration), completing the exercise."""
        self._require("record a distance", Phase.ACTIVE)
        index, exercise = self._find(exercise_id)
        if isinstance(exercise, EquipmentExercise):
            raise ValidationFailure(f"{exercise.name} is tracked in sets, not distance")
        if distance is None or distance <= 0:
            raise ValidationFailure("Distance must be greater than zero")
        update = {"actual_distance": distance, "completed": True}
        if duration is not None:
            if not isinstance(exercise, CardioExercise):
                raise ValidationFailure(f"{exercise.display_name} has no duration")
            if duration <= 0:
                raise ValidationFailure("Duration must be greater than zero")
            update["actual_duration"] = duration
        return self._put(index, exercise.model_copy(update=update))

    def finish(self) -> Workout:
        self._require("finish the workout", Phase.ACTIVE)
        if self.completed_count < self.total_count:
            raise ValidationFailure("Some exercises are not complete; finish early instead")
        return self._finish()

    def finish_early(self) -> Workout:
        self._require("finish the workout early", Phase.ACTIVE)
        if self.completed_count == self.total_count:
            raise ValidationFailure("Every exercise is complete; finish normally")
        return self._finish()

    def _finish(self) -> Workout:
        workout = self.workout.model_copy(update={"end_time": self._clock(), "completed": True})
        self.workouts.append(workout)
        self._transition(Phase.SUMMARY)
        # the active slot keeps the finished workout until the summary is closed
        return self._save(workout)

    # --- summary and exits ---

    def summary(self) -> WorkoutSummary:
        self._require("show the summary", Phase.SUMMARY)
        workout = self.workout
        return WorkoutSummary(
            workout=workout,
            completed=[e for e in workout.exercises if e.completed],
            skipped=[e for e in workout.exercises if not e.completed],
            duration=format_duration(workout.start_time, workout.end_time),
            total_volume=total_volume(workout),
        )

    def close(self) -> None:
        self._require("close the summary", Phase.SUMMARY)
        self._reset()

    def cancel(self) -> None:
        """Discard the current session without writing history."""
        if self.workout is not None:
            logger.info("Discarding %s workout %s", self.workout.type.value, self.workout.id)
        self._reset()

    def _reset(self) -> None:
        self._transition(Phase.TYPE_SELECTION)
        self.context = SessionContext()
        self.workouts.clear_active()
