from __future__ import annotations

from datetime import datetime as dt_datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from workout_core.models import BlockType, WorkoutStatus


class _Out(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# -- inputs --


class RepsInput(BaseModel):
    exercise_id: int
    reps: int


class WeightInput(BaseModel):
    exercise_id: int
    weight: float


class NotesInput(BaseModel):
    notes: Optional[str] = None


class SkipRoundInput(BaseModel):
    reason: Optional[str] = None


class ProgressInput(BaseModel):
    duration: Optional[int] = Field(default=None, ge=0)
    rest_time: Optional[int] = Field(default=None, ge=0)
    weight_used: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class SetInput(BaseModel):
    reps: int = Field(ge=0)
    weight: Optional[float] = Field(default=None, ge=0)


class RestInput(BaseModel):
    seconds: int = Field(gt=0, le=3600)


# -- outputs --


class TimerOut(_Out):
    elapsed_seconds: int
    is_active: bool
    is_paused: bool
    started_at: Optional[dt_datetime] = None
    paused_at: Optional[dt_datetime] = None
    total_paused_seconds: float
    current_interval: Optional[int] = None
    is_work_phase: Optional[bool] = None
    target_seconds: Optional[int] = None
    remaining_seconds: Optional[int] = None


class TimerDisplayOut(_Out):
    seconds: int
    clock: str
    label: str
    interval: Optional[str] = None


class ExerciseLogEntryOut(_Out):
    exercise_id: int
    plan_day_exercise_id: int
    target_reps: int
    actual_reps: int
    weight: Optional[float] = None
    completed: bool
    notes: str
    time_seconds: Optional[int] = None
    skipped: bool


class RoundOut(_Out):
    round_number: int
    exercises: list[ExerciseLogEntryOut]
    is_completed: bool
    is_skipped: bool
    completed_at: Optional[dt_datetime] = None
    elapsed_seconds: Optional[int] = None
    notes: str
    total_reps: int


class RoundBreakdownOut(_Out):
    round_number: int
    total_reps: int
    time_seconds: int
    completed_exercises: int


class CircuitMetricsOut(_Out):
    rounds_completed: int
    total_reps: int
    total_time_minutes: float
    score: str
    average_round_time: Optional[float] = None
    round_breakdown: list[RoundBreakdownOut] = Field(default_factory=list)


class CircuitSessionOut(BaseModel):
    block_id: int
    block_type: BlockType
    block_name: str
    current_round: int
    target_rounds: Optional[int] = None
    time_cap_minutes: Optional[int] = None
    is_completed: bool
    completion_reason: Optional[str] = None
    started_at: Optional[dt_datetime] = None
    completed_at: Optional[dt_datetime] = None
    rounds: list[RoundOut]
    timer: TimerOut
    timer_display: TimerDisplayOut
    metrics: CircuitMetricsOut
    can_complete_round: bool
    can_complete_circuit: bool
    button_text: Optional[str] = None
    instructions: str


class ExerciseSetOut(_Out):
    round_number: int
    set_number: int
    weight: float
    reps: int


class ExerciseProgressOut(_Out):
    sets_completed: int
    reps_completed: int
    rounds_completed: int
    weight_used: float
    sets: list[ExerciseSetOut]
    duration: int
    rest_time: int
    notes: str
    is_skipped: bool
    is_completed: bool


class CurrentExerciseOut(_Out):
    id: int
    exercise_id: Optional[int] = None
    name: str
    sets: Optional[int] = None
    reps: Optional[int] = None
    weight: Optional[float] = None
    duration: Optional[int] = None


class DaySummaryOut(_Out):
    total_time_seconds: int
    exercises_completed: int
    blocks_completed: int


class CompletionOut(_Out):
    success: bool
    workout_complete: bool = False
    error_title: Optional[str] = None
    error_description: Optional[str] = None


class WorkoutSessionOut(BaseModel):
    id: str
    plan_day_id: int
    workout_id: int
    status: WorkoutStatus
    cursor: int
    total_exercises: int
    progress_percent: int
    is_paused: bool
    current_exercise: Optional[CurrentExerciseOut] = None
    current_block_id: Optional[int] = None
    current_block_type: Optional[BlockType] = None
    skipped: list[int]
    workout_elapsed_seconds: int
    exercise_elapsed_seconds: int
    rest_remaining_seconds: Optional[int] = None
    progress: list[ExerciseProgressOut]
    summary: Optional[DaySummaryOut] = None
    circuit: Optional[CircuitSessionOut] = None


class MessageOut(BaseModel):
    message: str
