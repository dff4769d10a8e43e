from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, WebSocket, WebSocketDisconnect, status

from api.deps import SessionRegistry, channel_for, get_registry
from api.realtime import manager
from api.schemas import (
    CircuitMetricsOut,
    CircuitSessionOut,
    CompletionOut,
    CurrentExerciseOut,
    DaySummaryOut,
    ExerciseProgressOut,
    NotesInput,
    ProgressInput,
    RepsInput,
    RestInput,
    RoundOut,
    SetInput,
    SkipRoundInput,
    TimerDisplayOut,
    TimerOut,
    WeightInput,
    WorkoutSessionOut,
)
from workout_core.services.circuit_session import CircuitSessionStore
from workout_core.services.workout_session import CompletionResult, WorkoutSessionOrchestrator
from workout_core.validators import PlanDayWithBlocks

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

Registry = Annotated[SessionRegistry, Depends(get_registry)]


def circuit_out(store: CircuitSessionStore) -> CircuitSessionOut:
    session = store.session
    return CircuitSessionOut(
        block_id=session.block_id,
        block_type=session.block_type,
        block_name=session.block_name,
        current_round=session.current_round,
        target_rounds=session.target_rounds,
        time_cap_minutes=session.time_cap_minutes,
        is_completed=session.is_completed,
        completion_reason=session.completion_reason,
        started_at=session.started_at,
        completed_at=session.completed_at,
        rounds=[RoundOut.model_validate(r) for r in session.rounds],
        timer=TimerOut.model_validate(session.timer),
        timer_display=TimerDisplayOut.model_validate(store.timer_display),
        metrics=CircuitMetricsOut.model_validate(store.metrics),
        can_complete_round=store.can_complete_round,
        can_complete_circuit=store.can_complete_circuit,
        button_text=store.button_text,
        instructions=store.instructions,
    )


def session_out(session_id: str, orch: WorkoutSessionOrchestrator) -> WorkoutSessionOut:
    day = orch.day
    block = orch.current_block
    exercise = orch.current_exercise
    return WorkoutSessionOut(
        id=session_id,
        plan_day_id=day.id if day else 0,
        workout_id=day.workout_id if day else 0,
        status=orch.status,
        cursor=orch.cursor,
        total_exercises=len(orch.exercises),
        progress_percent=orch.progress_percent,
        is_paused=orch.is_paused,
        current_exercise=CurrentExerciseOut.model_validate(exercise) if exercise else None,
        current_block_id=block.id if block else None,
        current_block_type=block.block_type if block else None,
        skipped=list(orch.skipped),
        workout_elapsed_seconds=orch.workout_timer.elapsed_seconds,
        exercise_elapsed_seconds=orch.exercise_timer.elapsed_seconds,
        rest_remaining_seconds=orch.rest_timer.remaining_seconds if orch.rest_timer.state.is_active else None,
        progress=[ExerciseProgressOut.model_validate(p) for p in orch.progress],
        summary=DaySummaryOut.model_validate(orch.summary) if orch.summary else None,
        circuit=circuit_out(orch.circuit_store) if orch.circuit_store else None,
    )


def _completion(result: CompletionResult) -> CompletionOut:
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "title": result.error_title or "Workout not in progress",
                "description": result.error_description or "",
            },
        )
    return CompletionOut.model_validate(result)


def _circuit(orch: WorkoutSessionOrchestrator) -> CircuitSessionStore:
    if orch.circuit_store is None:
        raise HTTPException(status_code=404, detail="No active circuit block")
    return orch.circuit_store


@router.get("/health", tags=["health"])
async def health(request: Request):
    return {"status": "ok", "active_sessions": len(request.app.state.sessions)}


@router.websocket("/ws/sessions/{session_id}")
async def session_ws(websocket: WebSocket, session_id: str):
    channel = channel_for(session_id)
    await manager.connect(channel, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(channel, websocket)


# -- workout sessions --


@router.post("/sessions", response_model=WorkoutSessionOut, status_code=201, tags=["sessions"])
async def create_session(body: PlanDayWithBlocks, registry: Registry):
    session_id, orch = registry.create()
    orch.load(body)
    logger.info("Workout session created: id=%s plan_day=%s", session_id, body.id)
    return session_out(session_id, orch)


@router.get("/sessions/{session_id}", response_model=WorkoutSessionOut, tags=["sessions"])
async def get_session(session_id: str, registry: Registry):
    return session_out(session_id, registry.get(session_id))


@router.delete("/sessions/{session_id}", status_code=204, tags=["sessions"])
async def delete_session(session_id: str, registry: Registry):
    if not registry.remove(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return Response(status_code=204)


@router.post("/sessions/{session_id}/start", response_model=WorkoutSessionOut, tags=["sessions"])
async def start_session(session_id: str, registry: Registry):
    orch = registry.get(session_id)
    orch.start()
    return session_out(session_id, orch)


@router.post("/sessions/{session_id}/pause", response_model=WorkoutSessionOut, tags=["sessions"])
async def toggle_pause(session_id: str, registry: Registry):
    orch = registry.get(session_id)
    orch.toggle_pause()
    return session_out(session_id, orch)


@router.post("/sessions/{session_id}/resync", response_model=WorkoutSessionOut, tags=["sessions"])
async def resynchronize(session_id: str, registry: Registry):
    orch = registry.get(session_id)
    orch.resynchronize()
    return session_out(session_id, orch)


@router.post("/sessions/{session_id}/progress", response_model=ExerciseProgressOut, tags=["sessions"])
async def update_progress(session_id: str, body: ProgressInput, registry: Registry):
    progress = registry.get(session_id).update_progress(**body.changes())
    if progress is None:
        raise HTTPException(status_code=409, detail="No current exercise")
    return progress


@router.post("/sessions/{session_id}/sets", response_model=ExerciseProgressOut, tags=["sessions"])
async def log_set(session_id: str, body: SetInput, registry: Registry):
    progress = registry.get(session_id).log_set(body.reps, body.weight)
    if progress is None:
        raise HTTPException(status_code=409, detail="No current exercise")
    return progress


@router.post("/sessions/{session_id}/rest", response_model=WorkoutSessionOut, tags=["sessions"])
async def start_rest(session_id: str, body: RestInput, registry: Registry):
    orch = registry.get(session_id)
    orch.start_rest(body.seconds)
    return session_out(session_id, orch)


@router.delete("/sessions/{session_id}/rest", response_model=WorkoutSessionOut, tags=["sessions"])
async def skip_rest(session_id: str, registry: Registry):
    orch = registry.get(session_id)
    orch.skip_rest()
    return session_out(session_id, orch)


@router.post("/sessions/{session_id}/complete-exercise", response_model=CompletionOut, tags=["sessions"])
async def complete_exercise(session_id: str, body: NotesInput, registry: Registry):
    result = await registry.get(session_id).complete_exercise(body.notes)
    return _completion(result)


@router.post("/sessions/{session_id}/skip-exercise", response_model=CompletionOut, tags=["sessions"])
async def skip_exercise(session_id: str, registry: Registry):
    result = await registry.get(session_id).skip_exercise()
    return _completion(result)


@router.post("/sessions/{session_id}/complete-day", response_model=DaySummaryOut, tags=["sessions"])
async def complete_day(session_id: str, registry: Registry):
    summary = await registry.get(session_id).complete_day()
    if summary is None:
        raise HTTPException(status_code=409, detail="No workout day loaded")
    return summary


# -- circuit block of a session --


@router.get("/sessions/{session_id}/circuit", response_model=CircuitSessionOut, tags=["circuit"])
async def get_circuit(session_id: str, registry: Registry):
    return circuit_out(_circuit(registry.get(session_id)))


@router.post("/sessions/{session_id}/circuit/start", response_model=CircuitSessionOut, tags=["circuit"])
async def start_circuit(session_id: str, registry: Registry):
    store = _circuit(registry.get(session_id))
    store.start()
    return circuit_out(store)


@router.post("/sessions/{session_id}/circuit/timer", response_model=CircuitSessionOut, tags=["circuit"])
async def toggle_circuit_timer(session_id: str, registry: Registry):
    store = _circuit(registry.get(session_id))
    store.toggle_timer()
    return circuit_out(store)


@router.post("/sessions/{session_id}/circuit/reps", response_model=CircuitSessionOut, tags=["circuit"])
async def update_circuit_reps(session_id: str, body: RepsInput, registry: Registry):
    store = _circuit(registry.get(session_id))
    store.update_exercise_reps(body.exercise_id, body.reps)
    return circuit_out(store)


@router.post("/sessions/{session_id}/circuit/weight", response_model=CircuitSessionOut, tags=["circuit"])
async def update_circuit_weight(session_id: str, body: WeightInput, registry: Registry):
    store = _circuit(registry.get(session_id))
    store.update_exercise_weight(body.exercise_id, body.weight)
    return circuit_out(store)


@router.post("/sessions/{session_id}/circuit/complete-round", response_model=CircuitSessionOut, tags=["circuit"])
async def complete_round(session_id: str, body: NotesInput, registry: Registry):
    store = _circuit(registry.get(session_id))
    store.complete_round(body.notes)
    return circuit_out(store)


@router.post("/sessions/{session_id}/circuit/skip-round", response_model=CircuitSessionOut, tags=["circuit"])
async def skip_round(session_id: str, body: SkipRoundInput, registry: Registry):
    store = _circuit(registry.get(session_id))
    store.skip_round(body.reason)
    return circuit_out(store)


@router.post("/sessions/{session_id}/circuit/complete", response_model=CircuitMetricsOut, tags=["circuit"])
async def complete_circuit(session_id: str, body: NotesInput, registry: Registry):
    store = _circuit(registry.get(session_id))
    return store.complete_circuit(body.notes)


@router.post("/sessions/{session_id}/circuit/reset", response_model=CircuitSessionOut, tags=["circuit"])
async def reset_circuit(session_id: str, registry: Registry):
    store = _circuit(registry.get(session_id))
    store.reset()
    return circuit_out(store)
