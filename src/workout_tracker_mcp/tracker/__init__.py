from workout_tracker_mcp.tracker.cache import LocalCache
from workout_tracker_mcp.tracker.client import KeyValueStoreClient
from workout_tracker_mcp.tracker.synced import SyncedState, SyncedStore
from workout_tracker_mcp.tracker.models import (
    WorkoutType, Workout, Exercise,
    EquipmentExercise, CardioExercise, SwimExercise, RunExercise,
)
from workout_tracker_mcp.tracker.repository import WorkoutRepository, ChecklistRepository
from workout_tracker_mcp.tracker.machine import (
    WorkoutSessionMachine, Phase, SessionContext, WorkoutSummary,
)
from workout_tracker_mcp.tracker.exceptions import (
    TrackerError, RemoteUnavailable, APIError, NotFound,
    ValidationFailure, DecodeError, InvalidTransition,
)

__all__ = [
    "LocalCache", "KeyValueStoreClient", "SyncedState", "SyncedStore",
    "WorkoutType", "Workout", "Exercise",
    "EquipmentExercise", "CardioExercise", "SwimExercise", "RunExercise",
    "WorkoutRepository", "ChecklistRepository",
    "WorkoutSessionMachine", "Phase", "SessionContext", "WorkoutSummary",
    "TrackerError", "RemoteUnavailable", "APIError", "NotFound",
    "ValidationFailure", "DecodeError", "InvalidTransition",
]
