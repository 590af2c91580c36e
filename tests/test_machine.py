from datetime import date, datetime, timedelta, timezone

import pytest

from workout_tracker_mcp.tracker import (
    CardioExercise,
    ChecklistRepository,
    EquipmentExercise,
    InvalidTransition,
    Phase,
    SwimExercise,
    ValidationFailure,
    Workout,
    WorkoutSessionMachine,
    WorkoutType,
)
from workout_tracker_mcp.tracker.repository import ACTIVE_WORKOUT_KEY


def _plan_pull(machine):
    machine.choose_type("Pull")
    machine.continue_checklist()
    machine.skip_past_workout()


def _completed_pull(day: int) -> Workout:
    when = datetime(2024, 5, day, 18, 0, tzinfo=timezone.utc)
    return Workout(
        type=WorkoutType.PULL,
        date=when,
        start_time=when,
        end_time=when + timedelta(minutes=50),
        completed=True,
        exercises=[
            EquipmentExercise(
                name="Deadlift", weight=100, target_reps=5, target_sets=3,
                completed_sets=3, actual_reps=[5, 5, 5], actual_weight=105, completed=True,
            ),
            EquipmentExercise(
                name="Row", weight=50, target_reps=10, target_sets=3,
                completed_sets=1, actual_reps=[10],
            ),
            CardioExercise(name="Rower", target_distance=2, actual_distance=2.1, completed=True),
        ],
    )


def test_starts_in_type_selection(machine):
    assert machine.phase is Phase.TYPE_SELECTION
    assert machine.workout is None


def test_pull_session_scenario(machine, workouts):
    machine.choose_type("Pull")
    assert machine.phase is Phase.CHECKLIST

    machine.continue_checklist()
    assert machine.phase is Phase.PAST_WORKOUT_SELECTION

    machine.skip_past_workout()
    assert machine.phase is Phase.PLANNING
    assert machine.workout.exercises == []

    assert not machine.can_start()
    with pytest.raises(ValidationFailure):
        machine.start_workout()
    assert machine.phase is Phase.PLANNING

    pullup = machine.add_equipment("Pull-up", 0, 8, 3)
    row = machine.add_equipment("Row", 50, 10, 3)
    curl = machine.add_equipment("Curl", 12, 12, 2)
    machine.start_workout()
    assert machine.phase is Phase.ACTIVE

    machine.toggle_complete(pullup.id)
    machine.toggle_complete(row.id)
    with pytest.raises(ValidationFailure):
        machine.finish()
    machine.finish_early()

    assert machine.phase is Phase.SUMMARY
    summary = machine.summary()
    assert summary.progress == "2/3"
    assert [e.name for e in summary.skipped] == ["Curl"]
    assert [w.id for w in workouts.workouts()] == [machine.workout.id]
    assert workouts.workouts()[0].exercises[2].id == curl.id


def test_swim_session_starts_with_target_distance(machine):
    machine.choose_type(WorkoutType.SWIM)
    machine.continue_checklist()
    machine.skip_past_workout()

    assert not machine.can_start()
    machine.set_target_distance(1000)
    machine.start_workout()

    assert machine.phase is Phase.ACTIVE
    (swim,) = machine.workout.exercises
    assert isinstance(swim, SwimExercise)
    assert swim.target_distance == 1000


def test_target_distance_keeps_exercise_id(machine):
    machine.choose_type("Run (Outdoor)")
    machine.continue_checklist()
    machine.skip_past_workout()

    first = machine.set_target_distance(5)
    second = machine.set_target_distance(7.5)

    assert second.id == first.id
    assert [e.target_distance for e in machine.workout.exercises] == [7.5]
    with pytest.raises(ValidationFailure):
        machine.set_target_distance(0)


def test_empty_checklist_skips_checklist_phase(workouts, store, clock):
    checklist = ChecklistRepository(store, defaults=[])
    machine = WorkoutSessionMachine(workouts, checklist, clock=clock)

    machine.choose_type("Legs")

    assert machine.phase is Phase.PAST_WORKOUT_SELECTION


def test_unknown_type_is_rejected(machine):
    with pytest.raises(ValidationFailure):
        machine.choose_type("Climb")
    assert machine.phase is Phase.TYPE_SELECTION


@pytest.mark.parametrize("operation", [
    lambda m: m.start_workout(),
    lambda m: m.continue_checklist(),
    lambda m: m.skip_past_workout(),
    lambda m: m.confirm_date(date(2024, 5, 1)),
    lambda m: m.finish(),
    lambda m: m.finish_early(),
    lambda m: m.close(),
    lambda m: m.summary(),
    lambda m: m.toggle_complete("x"),
])
def test_operations_outside_their_phase_are_rejected(machine, operation):
    with pytest.raises(InvalidTransition):
        operation(machine)
    assert machine.phase is Phase.TYPE_SELECTION


def test_planning_cannot_finish_or_track(machine):
    _plan_pull(machine)
    exercise = machine.add_equipment("Row", 50, 10, 3)

    with pytest.raises(InvalidTransition):
        machine.finish_early()
    with pytest.raises(InvalidTransition):
        machine.complete_set(exercise.id)
    with pytest.raises(InvalidTransition):
        machine.choose_type("Push")
    assert machine.phase is Phase.PLANNING


def test_reusing_past_workout_clones_plan(machine, workouts):
    source = _completed_pull(3)
    workouts.append(_completed_pull(1))
    workouts.append(source)
    machine.choose_type("Pull")
    machine.continue_checklist()

    candidates = machine.past_workout_candidates()
    assert candidates[0].id == source.id
    assert len(candidates) == 2

    machine.pick_past_workout(source.id)

    assert machine.phase is Phase.PLANNING
    cloned = machine.workout.exercises
    assert len(cloned) == 3
    assert len({e.id for e in cloned}) == 3
    assert not {e.id for e in cloned} & {e.id for e in source.exercises}
    assert all(not e.completed for e in cloned)
    assert [e.completed_sets for e in cloned if isinstance(e, EquipmentExercise)] == [0, 0]
    assert all(e.actual_reps is None and e.actual_weight is None
               for e in cloned if isinstance(e, EquipmentExercise))
    assert cloned[2].actual_distance is None
    assert [(e.name, e.weight, e.target_reps, e.target_sets) for e in cloned[:2]] == [
        ("Deadlift", 100, 5, 3), ("Row", 50, 10, 3),
    ]
    assert cloned[2].target_distance == 2


def test_reusing_unknown_workout_fails(machine):
    machine.choose_type("Pull")
    machine.continue_checklist()
    with pytest.raises(ValidationFailure):
        machine.pick_past_workout("missing")
    assert machine.phase is Phase.PAST_WORKOUT_SELECTION


def test_load_last_workout_copies_newest_plan(machine, workouts):
    workouts.append(_completed_pull(1))
    newest = _completed_pull(3)
    workouts.append(newest)
    machine.choose_type("Pull")
    machine.continue_checklist()

    machine.load_last_workout()

    assert machine.phase is Phase.PLANNING
    assert [e.name for e in machine.workout.exercises] == ["Deadlift", "Row", "Rower"]
    assert not {e.id for e in machine.workout.exercises} & {e.id for e in newest.exercises}
    assert all(not e.completed for e in machine.workout.exercises)


def test_load_last_workout_on_empty_plan_only(machine, workouts):
    workouts.append(_completed_pull(3))
    _plan_pull(machine)

    machine.load_last_workout()
    assert machine.workout.total_count == 3

    with pytest.raises(ValidationFailure):
        machine.load_last_workout()
    assert machine.workout.total_count == 3


def test_load_last_workout_without_history(machine):
    machine.choose_type("Pull")
    machine.continue_checklist()
    with pytest.raises(ValidationFailure):
        machine.load_last_workout()
    assert machine.phase is Phase.PAST_WORKOUT_SELECTION


def test_history_mixing_offset_and_naive_timestamps(machine, workouts):
    aware = _completed_pull(3)
    naive = _completed_pull(1).to_document()
    for field in ("date", "startTime", "endTime"):
        naive[field] = naive[field][:19]
    workouts.history.set([naive, aware.to_document()])
    machine.choose_type("Pull")
    machine.continue_checklist()

    candidates = machine.past_workout_candidates()

    assert [w.id for w in candidates] == [aware.id, naive["id"]]
    assert workouts.last_of_type(WorkoutType.PULL).id == aware.id


def test_past_workout_is_logged_complete(machine, workouts, clock):
    machine.begin(past_mode=True)
    machine.choose_type("Push")
    assert machine.phase is Phase.DATE_SELECTION

    with pytest.raises(ValidationFailure):
        machine.confirm_date(None)
    with pytest.raises(ValidationFailure):
        machine.confirm_date(date(2024, 6, 1))
    machine.confirm_date(date(2024, 5, 1), duration_minutes=45)
    assert machine.phase is Phase.PAST_WORKOUT_SELECTION
    assert machine.workout.date.date() == date(2024, 5, 1)

    machine.skip_past_workout()
    bench = machine.add_equipment("Bench", 60, 8, 3)
    machine.update_exercise(bench.id, actual_weight=65)
    machine.add_cardio("Bike", target_duration=15)
    machine.start_workout()

    assert machine.phase is Phase.SUMMARY
    workout = machine.workout
    assert workout.completed
    assert all(e.completed for e in workout.exercises)
    bench, bike = workout.exercises
    assert bench.completed_sets == 3
    assert bench.actual_weight == 65
    assert bench.actual_reps == [8, 8, 8]
    assert bike.actual_duration == 15
    assert bike.actual_distance is None
    assert round((workout.end_time - workout.start_time).total_seconds() / 60) == 45
    assert workouts.workouts()[0].id == workout.id

    machine.close()
    assert machine.phase is Phase.TYPE_SELECTION
    assert workouts.active() is None


def test_past_workout_default_duration(machine):
    machine.begin(past_mode=True)
    machine.choose_type("Swim")
    machine.confirm_date(date(2024, 5, 9))
    machine.skip_past_workout()
    machine.set_target_distance(1500)
    machine.start_workout()

    assert machine.workout.duration_minutes == 60
    assert machine.workout.exercises[0].actual_distance == 1500


def test_duration_only_for_past_workouts(machine):
    _plan_pull(machine)
    with pytest.raises(ValidationFailure):
        machine.set_duration(30)


def test_finish_records_end_time_and_keeps_active_slot(machine, workouts, clock):
    _plan_pull(machine)
    row = machine.add_equipment("Row", 50, 10, 1)
    machine.start_workout()
    clock.advance(42)
    machine.complete_set(row.id)
    machine.finish()

    assert machine.summary().duration == "42m"
    history = workouts.workouts()
    assert history[0].end_time == clock.now
    assert workouts.active().completed is True

    machine.close()
    assert workouts.active() is None
    assert len(workouts.workouts()) == 1


def test_reload_before_closing_summary_resumes_into_active(machine, workouts, checklist, clock):
    # the active slot is only cleared on close, so a reload during the
    # summary lands back in the active phase with a completed workout
    _plan_pull(machine)
    row = machine.add_equipment("Row", 50, 10, 1)
    machine.start_workout()
    machine.toggle_complete(row.id)
    machine.finish()

    reloaded = WorkoutSessionMachine(workouts, checklist, clock=clock)

    assert reloaded.phase is Phase.ACTIVE
    assert reloaded.workout.completed is True
    assert reloaded.workout.id == machine.workout.id


def test_resumes_active_workout_on_start(machine, workouts, checklist, clock):
    _plan_pull(machine)
    machine.add_cardio("Bike", target_distance=10)
    machine.start_workout()

    resumed = WorkoutSessionMachine(workouts, checklist, clock=clock)

    assert resumed.phase is Phase.ACTIVE
    assert resumed.workout.exercises[0].name == "Bike"


async def test_resumes_when_remote_active_workout_arrives(storage, store, workouts, checklist, clock):
    remote = _completed_pull(2).model_copy(update={"completed": False, "end_time": None})
    storage.data[ACTIVE_WORKOUT_KEY] = remote.to_document()
    machine = WorkoutSessionMachine(workouts, checklist, clock=clock)
    assert machine.phase is Phase.TYPE_SELECTION

    await store.flush()

    assert machine.phase is Phase.ACTIVE
    assert machine.workout.id == remote.id
    assert machine.completed_count == 2


def test_cancel_discards_without_history(machine, workouts):
    _plan_pull(machine)
    machine.add_equipment("Row", 50, 10, 3)
    machine.start_workout()

    machine.cancel()

    assert machine.phase is Phase.TYPE_SELECTION
    assert machine.workout is None
    assert workouts.active() is None
    assert workouts.workouts() == []


@pytest.mark.parametrize("steps", [
    [],
    ["choose"],
    ["choose", "checklist"],
    ["choose", "checklist", "skip"],
])
def test_cancel_from_any_phase(machine, workouts, steps):
    actions = {
        "choose": lambda: machine.choose_type("Legs"),
        "checklist": machine.continue_checklist,
        "skip": machine.skip_past_workout,
    }
    for step in steps:
        actions[step]()

    machine.cancel()

    assert machine.phase is Phase.TYPE_SELECTION
    assert workouts.active() is None


def test_complete_set_completes_exercise_with_last_set(machine):
    _plan_pull(machine)
    row = machine.add_equipment("Row", 50, 10, 2)
    machine.start_workout()

    machine.complete_set(row.id, reps=10)
    assert not machine.workout.find_exercise(row.id).completed
    done = machine.complete_set(row.id, reps=8, weight=55)

    assert done.completed
    assert done.completed_sets == 2
    assert done.actual_reps == [10, 8]
    assert done.actual_weight == 55
    with pytest.raises(ValidationFailure):
        machine.complete_set(row.id)


def test_toggle_does_not_touch_completed_sets(machine):
    _plan_pull(machine)
    row = machine.add_equipment("Row", 50, 10, 3)
    machine.start_workout()
    machine.complete_set(row.id)

    toggled = machine.toggle_complete(row.id)

    assert toggled.completed
    assert toggled.completed_sets == 1


def test_record_distance_for_cardio(machine):
    _plan_pull(machine)
    bike = machine.add_cardio("Bike", target_distance=10, target_duration=30)
    row = machine.add_equipment("Row", 50, 10, 3)
    machine.start_workout()

    done = machine.record_distance(bike.id, 11.2, duration=28)

    assert done.completed
    assert (done.actual_distance, done.actual_duration) == (11.2, 28)
    with pytest.raises(ValidationFailure):
        machine.record_distance(row.id, 1)


def test_streak_counts_increases_only(machine):
    _plan_pull(machine)
    ids = [machine.add_equipment(name, 20, 10, 3).id for name in ("A", "B", "C")]
    machine.start_workout()

    machine.toggle_complete(ids[0])
    machine.toggle_complete(ids[1])
    assert machine.context.streak == 2

    machine.toggle_complete(ids[0])
    assert machine.context.streak == 2

    machine.toggle_complete(ids[0])
    assert machine.context.streak == 3


def test_elapsed_time(machine, clock):
    _plan_pull(machine)
    machine.add_equipment("Row", 50, 10, 3)
    machine.start_workout()
    clock.advance(12.5)

    assert machine.elapsed() == timedelta(minutes=12, seconds=30)


def test_invalid_exercise_is_not_added(machine):
    _plan_pull(machine)

    with pytest.raises(ValidationFailure):
        machine.add_equipment("  ", 50, 10, 3)
    with pytest.raises(ValidationFailure):
        machine.add_equipment("Row", 50, 0, 3)
    with pytest.raises(ValidationFailure):
        machine.add_cardio("Bike")
    with pytest.raises(ValidationFailure):
        machine.set_target_distance(5)

    assert machine.workout.exercises == []


def test_swim_workout_rejects_equipment(machine):
    machine.choose_type("Swim")
    machine.continue_checklist()
    machine.skip_past_workout()

    with pytest.raises(ValidationFailure):
        machine.add_equipment("Kickboard", 0, 10, 2)


def test_update_and_remove_exercise(machine):
    _plan_pull(machine)
    row = machine.add_equipment("Row", 50, 10, 3)
    curl = machine.add_equipment("Curl", 12, 12, 2)

    updated = machine.update_exercise(row.id, weight=55, name=" Barbell row ")
    assert (updated.id, updated.name, updated.weight) == (row.id, "Barbell row", 55)

    with pytest.raises(ValidationFailure):
        machine.update_exercise(row.id, target_sets=0)
    with pytest.raises(ValidationFailure):
        machine.update_exercise(row.id, type="cardio")
    assert machine.workout.find_exercise(row.id).target_sets == 3

    machine.remove_exercise(curl.id)
    assert [e.id for e in machine.workout.exercises] == [row.id]
    with pytest.raises(ValidationFailure):
        machine.remove_exercise("missing")


async def test_session_is_persisted_to_storage(machine, store, storage):
    _plan_pull(machine)
    machine.add_equipment("Row", 50, 10, 3)
    machine.start_workout()

    await store.flush()

    active = storage.data[ACTIVE_WORKOUT_KEY]
    assert active["type"] == "Pull"
    assert active["exercises"][0]["targetReps"] == 10
    assert storage.data["checklist-items"] == ["Water bottle", "Towel", "Gym shoes"]
