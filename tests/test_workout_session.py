from __future__ import annotations

import datetime as dt
import logging

import pytest

from workout_core.errors import TransientIOError
from workout_core.models import WorkoutStatus
from workout_core.services.logging_api import InMemoryWorkoutLogApi
from workout_core.services.workout_session import (
    NO_PROGRESS_TITLE,
    SKIP_UNAVAILABLE,
    WorkoutSessionOrchestrator,
)
from workout_core.validators import PlanDayWithBlocks

TODAY = dt.date(2026, 3, 2)


def _day(*blocks, is_complete=False) -> PlanDayWithBlocks:
    return PlanDayWithBlocks.model_validate(
        {"id": 7, "workoutId": 70, "name": "Monday", "date": "2026-03-02", "isComplete": is_complete, "blocks": list(blocks)}
    )


WARMUP = {"id": 1, "blockType": "warmup", "exercises": [{"id": 1, "name": "Jumping jacks", "reps": 5}]}
STRENGTH = {
    "id": 2,
    "blockType": "traditional",
    "exercises": [
        {"id": 2, "name": "Squat", "sets": 3, "reps": 8, "weight": 60},
        {"id": 3, "name": "Plank", "duration": 60},
    ],
}
AMRAP = {
    "id": 3,
    "blockType": "AMRAP",
    "timeCapMinutes": 10,
    "exercises": [
        {"id": 4, "exerciseId": 204, "name": "Burpee", "reps": 10},
        {"id": 5, "exerciseId": 205, "name": "Air squat", "reps": 15},
    ],
}
COOLDOWN = {"id": 4, "blockType": "cooldown", "exercises": [{"id": 6, "name": "Stretch"}]}


@pytest.fixture
def api():
    return InMemoryWorkoutLogApi()


@pytest.fixture
def refreshes():
    return []


@pytest.fixture
def orchestrator(api, settings, env, cues, refreshes):
    async def refresh(start, end):
        refreshes.append((start, end))

    return WorkoutSessionOrchestrator(
        api, settings=settings, env=env, cues=cues, refresh_dashboard=refresh, today=lambda: TODAY
    )


@pytest.fixture
def full_day():
    return _day(WARMUP, STRENGTH, AMRAP, COOLDOWN)


def _logged_ids(api):
    return [call["planDayExerciseId"] for call in api.calls_for("log_exercise_completion")]


def test_load_flattens_exercises_in_block_order(orchestrator, full_day):
    status = orchestrator.load(full_day)
    assert status is WorkoutStatus.not_started
    assert [ex.id for ex in orchestrator.exercises] == [1, 2, 3, 4, 5, 6]
    assert len(orchestrator.progress) == 6
    assert orchestrator.current_block.id == 1
    assert orchestrator.is_current_block_warmup_cooldown is True


def test_completed_day_loads_as_completed(orchestrator):
    orchestrator.load(_day(WARMUP, is_complete=True))
    assert orchestrator.status is WorkoutStatus.completed
    assert orchestrator.current_exercise is None


def test_start_runs_timers_and_emits_cues(orchestrator, full_day, cues, keep_awake):
    orchestrator.load(full_day)
    orchestrator.start()
    assert orchestrator.status is WorkoutStatus.in_progress
    assert cues.initialized is True
    assert cues.names == ["workout_started", "block_started"]
    assert keep_awake.active == {"workout", "exercise"}
    assert orchestrator.circuit_store is None


def test_start_on_circuit_block_activates_store(orchestrator):
    orchestrator.load(_day(AMRAP, STRENGTH))
    orchestrator.start()
    assert orchestrator.is_current_block_circuit is True
    assert orchestrator.circuit_store is not None
    assert orchestrator.circuit_store.block.id == 3


@pytest.mark.asyncio
async def test_warmup_logs_default_set(orchestrator, full_day, api):
    orchestrator.load(full_day)
    orchestrator.start()
    result = await orchestrator.complete_exercise()
    assert result.success is True
    assert result.workout_complete is False
    logged = api.calls_for("log_exercise_completion")[0]
    assert logged["planDayExerciseId"] == 1
    assert logged["sets"] == [{"roundNumber": 1, "setNumber": 1, "weight": 0.0, "reps": 5}]
    assert orchestrator.progress[0].is_completed is True
    assert orchestrator.cursor == 1
    assert orchestrator.progress_percent == 16


@pytest.mark.asyncio
async def test_regular_exercise_without_progress_is_refused(orchestrator, full_day, api):
    orchestrator.load(full_day)
    orchestrator.start()
    await orchestrator.complete_exercise()
    result = await orchestrator.complete_exercise()
    assert result.success is False
    assert result.error_title == NO_PROGRESS_TITLE
    assert orchestrator.cursor == 1
    assert _logged_ids(api) == [1]


@pytest.mark.asyncio
async def test_regular_exercise_logs_sets_and_time(orchestrator, full_day, api, scheduler):
    orchestrator.load(full_day)
    orchestrator.start()
    await orchestrator.complete_exercise()
    orchestrator.log_set(8, 60)
    orchestrator.log_set(6, 65)
    scheduler.advance(45)
    result = await orchestrator.complete_exercise(notes="felt strong")
    assert result.success is True
    logged = api.calls_for("log_exercise_completion")[-1]
    assert logged["planDayExerciseId"] == 2
    assert [s["reps"] for s in logged["sets"]] == [8, 6]
    assert logged["timeTaken"] == 45
    assert logged["notes"] == "felt strong"
    progress = orchestrator.progress[1]
    assert progress.sets_completed == 2
    assert progress.reps_completed == 14
    assert progress.weight_used == 65.0
    assert progress.is_completed is True
    assert api.calls_for("mark_exercise_complete") == []


@pytest.mark.asyncio
async def test_duration_only_exercise_completes_without_sets(orchestrator, full_day, api):
    orchestrator.load(full_day)
    orchestrator.start()
    await orchestrator.complete_exercise()
    orchestrator.log_set(8, 60)
    await orchestrator.complete_exercise()
    result = await orchestrator.complete_exercise()
    assert result.success is True
    assert api.calls_for("log_exercise_completion")[-1]["sets"][0]["reps"] == 0
    assert orchestrator.cursor == 3
    assert orchestrator.is_current_block_circuit is True


@pytest.mark.asyncio
async def test_skip_is_refused_inside_circuit_block(orchestrator, api):
    orchestrator.load(_day(AMRAP, STRENGTH))
    orchestrator.start()
    result = await orchestrator.skip_exercise()
    assert result.success is False
    assert result.error_title == SKIP_UNAVAILABLE
    assert api.calls_for("skip_exercise") == []


@pytest.mark.asyncio
async def test_circuit_block_logs_rounds_and_jumps_past_block(orchestrator, api, cues):
    orchestrator.load(_day(AMRAP, COOLDOWN))
    orchestrator.start()
    store = orchestrator.circuit_store
    store.complete_round()
    store.complete_round()
    store.update_exercise_reps(204, 4)

    result = await orchestrator.complete_exercise()

    assert result.success is True
    assert orchestrator.cursor == 2
    assert store.disposed is True
    assert orchestrator.circuit_store is None
    # rounds 1 and 2 plus the in-progress round 3
    assert sorted(_logged_ids(api)) == [4, 4, 4, 5, 5, 5]
    assert [c["plan_day_exercise_id"] for c in api.calls_for("mark_exercise_complete")][-2:] == [4, 5]
    burpees = orchestrator.progress[0]
    assert burpees.is_completed is True
    assert burpees.rounds_completed == 2
    assert burpees.reps_completed == 20
    assert "circuit_completed" in cues.names


@pytest.mark.asyncio
async def test_skipped_rounds_are_not_logged(orchestrator, api):
    orchestrator.load(_day(AMRAP, COOLDOWN))
    orchestrator.start()
    store = orchestrator.circuit_store
    store.complete_round()
    store.skip_round("cramp")
    await orchestrator.complete_exercise()
    assert sorted(_logged_ids(api)) == [4, 5]


@pytest.mark.asyncio
async def test_logging_failure_keeps_cursor_and_allows_retry(orchestrator, api):
    orchestrator.load(_day(AMRAP, COOLDOWN))
    orchestrator.start()
    store = orchestrator.circuit_store
    store.complete_round()
    api.fail_on.add("mark_exercise_complete")

    with pytest.raises(TransientIOError):
        await orchestrator.complete_exercise()
    assert orchestrator.cursor == 0
    assert store.session.is_completed is True
    assert orchestrator.progress[0].is_completed is False

    api.fail_on.clear()
    result = await orchestrator.complete_exercise()
    assert result.success is True
    assert orchestrator.cursor == 2


@pytest.mark.asyncio
async def test_skip_records_locally_before_remote_call(orchestrator, api):
    orchestrator.load(_day(STRENGTH))
    orchestrator.start()
    api.fail_on.add("skip_exercise")
    with pytest.raises(TransientIOError):
        await orchestrator.skip_exercise()
    assert orchestrator.skipped == (2,)
    assert orchestrator.cursor == 0

    api.fail_on.clear()
    result = await orchestrator.skip_exercise()
    assert result.success is True
    assert orchestrator.skipped == (2,)
    assert orchestrator.cursor == 1
    assert api.calls_for("skip_exercise") == [{"workout_id": 70, "plan_day_exercise_id": 2}]


@pytest.mark.asyncio
async def test_last_exercise_completes_the_day(orchestrator, api, cues, refreshes, keep_awake, scheduler):
    orchestrator.load(_day(WARMUP, STRENGTH))
    orchestrator.start()
    scheduler.advance(90)
    await orchestrator.complete_exercise()
    await orchestrator.skip_exercise()
    result = await orchestrator.complete_exercise()

    assert result.workout_complete is True
    assert orchestrator.status is WorkoutStatus.completed
    summary = orchestrator.summary
    assert summary.total_time_seconds == 90
    assert summary.exercises_completed == 2
    assert summary.blocks_completed == 2
    assert api.calls_for("mark_day_complete") == [
        {"plan_day_id": 7, "totalTimeSeconds": 90, "exercisesCompleted": 2, "blocksCompleted": 2}
    ]
    assert cues.names[-1] == "workout_completed"
    assert refreshes == [(dt.date(2026, 1, 31), dt.date(2026, 3, 9))]
    assert keep_awake.active == set()
    assert scheduler.active == []

    again = await orchestrator.complete_day()
    assert again is summary
    assert len(api.calls_for("mark_day_complete")) == 1


@pytest.mark.asyncio
async def test_dashboard_refresh_failure_is_logged(api, settings, env, caplog):
    async def refresh(start, end):
        raise RuntimeError("dashboard down")

    orchestrator = WorkoutSessionOrchestrator(api, settings=settings, env=env, refresh_dashboard=refresh)
    orchestrator.load(_day(WARMUP))
    orchestrator.start()
    with caplog.at_level(logging.WARNING):
        result = await orchestrator.complete_exercise()
    assert result.workout_complete is True
    assert orchestrator.status is WorkoutStatus.completed
    assert "Dashboard refresh failed" in caplog.text


@pytest.mark.asyncio
async def test_day_completion_failure_keeps_status(orchestrator, api):
    orchestrator.load(_day(WARMUP))
    orchestrator.start()
    api.fail_on.add("mark_day_complete")
    with pytest.raises(TransientIOError):
        await orchestrator.complete_exercise()
    assert orchestrator.status is WorkoutStatus.in_progress
    assert orchestrator.summary is None


def test_toggle_pause_freezes_workout_and_circuit_timers(orchestrator, clock, scheduler, keep_awake):
    orchestrator.load(_day(AMRAP))
    orchestrator.start()
    orchestrator.circuit_store.start()
    scheduler.advance(20)

    assert orchestrator.toggle_pause() is True
    assert orchestrator.circuit_store.session.timer.is_paused is True
    assert keep_awake.active == set()
    clock.advance(300)

    assert orchestrator.toggle_pause() is False
    scheduler.advance(10)
    assert orchestrator.workout_timer.elapsed_seconds == 30
    assert orchestrator.circuit_store.session.timer.elapsed_seconds == 30


@pytest.mark.asyncio
async def test_advancing_while_paused_keeps_exercise_timer_stopped(orchestrator, full_day, scheduler, keep_awake):
    orchestrator.load(full_day)
    orchestrator.start()
    orchestrator.toggle_pause()
    await orchestrator.complete_exercise()
    scheduler.advance(30)
    assert orchestrator.cursor == 1
    assert keep_awake.active == set()
    assert orchestrator.exercise_timer.elapsed_seconds == 0

    assert orchestrator.toggle_pause() is False
    scheduler.advance(5)
    assert orchestrator.exercise_timer.elapsed_seconds == 5
    assert keep_awake.active == {"workout", "exercise"}


def test_rest_countdown_emits_cues(orchestrator, full_day, cues, scheduler):
    orchestrator.load(full_day)
    orchestrator.start()
    orchestrator.start_rest(30)
    assert orchestrator.current_progress.rest_time == 30
    scheduler.advance(30)
    assert cues.names[-2:] == ["rest_started", "rest_completed"]
    assert orchestrator.rest_timer.state.is_active is False


def test_resynchronize_catches_up_all_timers(orchestrator, clock):
    orchestrator.load(_day(AMRAP))
    orchestrator.start()
    orchestrator.circuit_store.start()
    clock.advance(700)
    orchestrator.resynchronize()
    assert orchestrator.workout_timer.state.elapsed_seconds == 700
    assert orchestrator.circuit_store.session.is_completed is True
    assert orchestrator.circuit_store.session.timer.elapsed_seconds == 600


@pytest.mark.asyncio
async def test_teardown_cancels_everything(orchestrator, full_day, cues, scheduler, keep_awake, caplog):
    orchestrator.load(full_day)
    orchestrator.start()
    orchestrator.start_rest(60)
    orchestrator.teardown()
    assert scheduler.active == []
    assert keep_awake.active == set()
    assert cues.cleaned_up is True
    with caplog.at_level(logging.WARNING):
        result = await orchestrator.complete_exercise()
    assert result.success is False
    assert "torn down" in caplog.text
