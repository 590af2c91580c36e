"""Workout history, active slot and checklist persistence."""

import logging

from workout_tracker_mcp.tracker.exceptions import ValidationFailure
from workout_tracker_mcp.tracker.models import Workout, WorkoutType, decode_workout, decode_workouts
from workout_tracker_mcp.tracker.synced import SyncedState, SyncedStore

logger = logging.getLogger(__name__)

WORKOUTS_KEY = "workouts"
ACTIVE_WORKOUT_KEY = "active-workout"
CHECKLIST_KEY = "checklist-items"

DEFAULT_CHECKLIST = ["Water bottle", "Towel", "Gym shoes", "Phone & earbuds"]


class WorkoutRepository:
    """Completed workout history plus the single in-progress workout slot."""

    def __init__(self, store: SyncedStore):
        self.history: SyncedState[list] = store.state(WORKOUTS_KEY, [])
        self.active_slot: SyncedState[dict | None] = store.state(ACTIVE_WORKOUT_KEY, None)

    def workouts(self) -> list[Workout]:
        return decode_workouts(self.history.value or [])

    def completed_of_type(self, workout_type: WorkoutType) -> list[Workout]:
        """Completed workouts of one type, newest first."""
        matching = [w for w in self.workouts() if w.type == workout_type and w.completed]
        return sorted(matching, key=lambda w: w.date, reverse=True)

    def last_of_type(self, workout_type: WorkoutType) -> Workout | None:
        matching = self.completed_of_type(workout_type)
        return matching[0] if matching else None

    def append(self, workout: Workout) -> None:
        document = workout.to_document()
        self.history.set(lambda previous: [*(previous or []), document])
        logger.info("Saved %s workout %s to history", workout.type.value, workout.id)

    def delete(self, workout_id: str) -> bool:
        before = len(self.history.value or [])
        after = self.history.set(
            lambda previous: [w for w in (previous or []) if w.get("id") != workout_id]
        )
        removed = len(after) < before
        if removed:
            logger.info("Deleted workout %s", workout_id)
        return removed

    def active(self) -> Workout | None:
        document = self.active_slot.value
        if not document:
            return None
        return decode_workout(document)

    def save_active(self, workout: Workout) -> None:
        self.active_slot.set(workout.to_document())

    def clear_active(self) -> None:
        self.active_slot.set(None)


class ChecklistRepository:
    """User-maintained pre-workout reminder items."""

    def __init__(self, store: SyncedStore, defaults: list[str] | None = None):
        self.state: SyncedState[list] = store.state(
            CHECKLIST_KEY, list(DEFAULT_CHECKLIST if defaults is None else defaults)
        )

    def items(self) -> list[str]:
        return list(self.state.value or [])

    def add(self, text: str) -> list[str]:
        item = (text or "").strip()
        if not item:
            raise ValidationFailure("Checklist item cannot be empty")
        if item in self.items():
            raise ValidationFailure(f"Checklist already contains {item!r}")
        return self.state.set(lambda previous: [*(previous or []), item])

    def remove(self, text: str) -> list[str]:
        return self.state.set(lambda previous: [i for i in (previous or []) if i != text])

    def reset(self) -> list[str]:
        return self.state.set(list(DEFAULT_CHECKLIST))
