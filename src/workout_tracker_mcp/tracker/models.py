"""Workout tracker data models."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from workout_tracker_mcp.tracker.exceptions import DecodeError


def generate_id() -> str:
    return uuid.uuid4().hex


class WorkoutType(str, Enum):
    """The kind of session; decides which exercise variants are allowed."""
    PULL = "Pull"
    PUSH = "Push"
    LEGS = "Legs"
    SWIM = "Swim"
    RUN_GYM = "Run (Gym)"
    RUN_OUTDOOR = "Run (Outdoor)"

    @property
    def is_strength(self) -> bool:
        return self in (WorkoutType.PULL, WorkoutType.PUSH, WorkoutType.LEGS)

    @property
    def is_swim(self) -> bool:
        return self is WorkoutType.SWIM

    @property
    def is_run(self) -> bool:
        return self in (WorkoutType.RUN_GYM, WorkoutType.RUN_OUTDOOR)

    @property
    def exercise_types(self) -> tuple[str, ...]:
        if self.is_swim:
            return ("swim",)
        if self.is_run:
            return ("run",)
        return ("equipment", "cardio")


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EquipmentExercise(_Model):
    """A weighted exercise tracked in sets."""
    type: Literal["equipment"] = "equipment"
    id: str = Field(default_factory=generate_id)
    name: str = Field(min_length=1)
    weight: float = Field(ge=0)
    target_reps: int = Field(gt=0)
    target_sets: int = Field(gt=0)
    completed_sets: int = Field(default=0, ge=0)
    actual_weight: float | None = None
    actual_reps: list[int] | None = None
    completed: bool = False

    @model_validator(mode="after")
    def _check_sets(self) -> "EquipmentExercise":
        if self.completed_sets > self.target_sets:
            raise ValueError("completed sets cannot exceed target sets")
        return self

    @property
    def display_name(self) -> str:
        return self.name


class CardioExercise(_Model):
    """A cardio exercise inside a strength workout (km / minutes)."""
    type: Literal["cardio"] = "cardio"
    id: str = Field(default_factory=generate_id)
    name: str = Field(min_length=1)
    target_distance: float | None = Field(default=None, gt=0)
    target_duration: float | None = Field(default=None, gt=0)
    actual_distance: float | None = None
    actual_duration: float | None = None
    completed: bool = False

    @model_validator(mode="after")
    def _check_target(self) -> "CardioExercise":
        if self.target_distance is None and self.target_duration is None:
            raise ValueError("either distance or duration is required")
        return self

    @property
    def display_name(self) -> str:
        return self.name


class SwimExercise(_Model):
    """The whole target of a Swim workout, in meters."""
    type: Literal["swim"] = "swim"
    id: str = Field(default_factory=generate_id)
    target_distance: float = Field(gt=0)
    actual_distance: float | None = None
    completed: bool = False

    @property
    def display_name(self) -> str:
        return f"Swim {self.target_distance:g}m"


class RunExercise(_Model):
    """The whole target of a Run workout, in kilometers."""
    type: Literal["run"] = "run"
    id: str = Field(default_factory=generate_id)
    target_distance: float = Field(gt=0)
    actual_distance: float | None = None
    completed: bool = False

    @property
    def display_name(self) -> str:
        return f"Run {self.target_distance:g}km"


Exercise = Annotated[
    Union[EquipmentExercise, CardioExercise, SwimExercise, RunExercise],
    Field(discriminator="type"),
]


class Workout(_Model):
    """One workout session."""
    id: str = Field(default_factory=generate_id)
    type: WorkoutType
    date: datetime
    start_time: datetime
    end_time: datetime | None = None
    exercises: list[Exercise] = []
    completed: bool = False

    @field_validator("date", "start_time", "end_time")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        # Stored documents may carry timestamps without an offset.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def completed_count(self) -> int:
        return sum(1 for e in self.exercises if e.completed)

    @property
    def total_count(self) -> int:
        return len(self.exercises)

    @property
    def duration_minutes(self) -> int | None:
        if self.end_time:
            return int((self.end_time - self.start_time).total_seconds() / 60)
        return None

    def find_exercise(self, exercise_id: str) -> Exercise | None:
        for exercise in self.exercises:
            if exercise.id == exercise_id:
                return exercise
        return None

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


_workout_list = TypeAdapter(list[Workout])


def decode_workout(data: dict) -> Workout:
    try:
        return Workout.model_validate(data)
    except ValidationError as exc:
        raise DecodeError(f"Invalid workout document: {exc}") from exc


def decode_workouts(data: list) -> list[Workout]:
    try:
        return _workout_list.validate_python(data)
    except ValidationError as exc:
        raise DecodeError(f"Invalid workout history: {exc}") from exc


def clone_exercise(exercise: Exercise) -> Exercise:
    """Copy an exercise's targets under a fresh id with all progress cleared."""
    reset = {"id": generate_id(), "completed": False}
    if isinstance(exercise, EquipmentExercise):
        reset.update(completed_sets=0, actual_weight=None, actual_reps=None)
    elif isinstance(exercise, CardioExercise):
        reset.update(actual_distance=None, actual_duration=None)
    elif isinstance(exercise, (SwimExercise, RunExercise)):
        reset.update(actual_distance=None)
    else:
        raise TypeError(f"Unknown exercise variant: {type(exercise).__name__}")
    return exercise.model_copy(update=reset, deep=True)


def complete_from_targets(exercise: Exercise) -> Exercise:
    """Mark an exercise done, filling unset actual values from its targets."""
    update: dict = {"completed": True}
    if isinstance(exercise, EquipmentExercise):
        update["completed_sets"] = exercise.target_sets
        if exercise.actual_weight is None:
            update["actual_weight"] = exercise.weight
        if exercise.actual_reps is None:
            update["actual_reps"] = [exercise.target_reps] * exercise.target_sets
    elif isinstance(exercise, CardioExercise):
        if exercise.actual_distance is None:
            update["actual_distance"] = exercise.target_distance
        if exercise.actual_duration is None:
            update["actual_duration"] = exercise.target_duration
    elif isinstance(exercise, (SwimExercise, RunExercise)):
        if exercise.actual_distance is None:
            update["actual_distance"] = exercise.target_distance
    else:
        raise TypeError(f"Unknown exercise variant: {type(exercise).__name__}")
    return exercise.model_copy(update=update, deep=True)
