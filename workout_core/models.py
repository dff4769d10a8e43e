"""Session state for circuit blocks and whole-day workouts.

Every value here is an immutable snapshot. Reducers in ``workout_core.services``
take a snapshot and return a new one via ``dataclasses.replace``; nothing is
mutated in place.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum


class BlockType(str, Enum):
    traditional = "traditional"
    amrap = "amrap"
    emom = "emom"
    for_time = "for_time"
    circuit = "circuit"
    tabata = "tabata"
    warmup = "warmup"
    cooldown = "cooldown"
    superset = "superset"
    flow = "flow"


class WorkoutStatus(str, Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    completed = "completed"


@dataclass(frozen=True)
class ExerciseLogEntry:
    """One exercise's performance inside a single round."""

    exercise_id: int
    plan_day_exercise_id: int
    target_reps: int
    actual_reps: int
    weight: float | None = None
    completed: bool = False
    notes: str = ""
    time_seconds: int | None = None
    skipped: bool = False


@dataclass(frozen=True)
class Round:
    round_number: int
    exercises: tuple[ExerciseLogEntry, ...]
    is_completed: bool = False
    is_skipped: bool = False
    completed_at: dt.datetime | None = None
    elapsed_seconds: int | None = None
    notes: str = ""

    @property
    def total_reps(self) -> int:
        return sum(entry.actual_reps for entry in self.exercises)

    @property
    def has_logged_reps(self) -> bool:
        return any(entry.actual_reps > 0 for entry in self.exercises)


@dataclass(frozen=True)
class TimerState:
    elapsed_seconds: int = 0
    is_active: bool = False
    is_paused: bool = False
    started_at: dt.datetime | None = None
    paused_at: dt.datetime | None = None
    total_paused_seconds: float = 0.0
    current_interval: int | None = None
    is_work_phase: bool | None = None
    target_seconds: int | None = None

    @property
    def is_running(self) -> bool:
        return self.is_active and not self.is_paused

    @property
    def remaining_seconds(self) -> int | None:
        if self.target_seconds is None:
            return None
        return max(0, self.target_seconds - self.elapsed_seconds)


@dataclass(frozen=True)
class CircuitSessionData:
    block_id: int
    block_type: BlockType
    rounds: tuple[Round, ...]
    current_round: int = 1
    block_name: str = ""
    target_rounds: int | None = None
    time_cap_minutes: int | None = None
    timer: TimerState = field(default_factory=TimerState)
    is_completed: bool = False
    started_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None
    notes: str = ""
    completion_reason: str | None = None

    @property
    def completed_rounds(self) -> tuple[Round, ...]:
        return tuple(r for r in self.rounds if r.is_completed)

    @property
    def current_round_data(self) -> Round | None:
        index = self.current_round - 1
        if 0 <= index < len(self.rounds):
            return self.rounds[index]
        return None


@dataclass(frozen=True)
class ExerciseSet:
    round_number: int
    set_number: int
    weight: float
    reps: int


@dataclass(frozen=True)
class ExerciseProgress:
    """Per-exercise counters the orchestrator keeps for the whole day."""

    sets_completed: int = 0
    reps_completed: int = 0
    rounds_completed: int = 0
    weight_used: float = 0.0
    sets: tuple[ExerciseSet, ...] = ()
    duration: int = 0
    rest_time: int = 0
    notes: str = ""
    is_skipped: bool = False
    is_completed: bool = False


@dataclass(frozen=True)
class RoundBreakdown:
    round_number: int
    total_reps: int
    time_seconds: int
    completed_exercises: int


@dataclass(frozen=True)
class CircuitMetrics:
    rounds_completed: int
    total_reps: int
    total_time_minutes: float
    score: str
    average_round_time: float | None = None
    round_breakdown: tuple[RoundBreakdown, ...] = ()


@dataclass(frozen=True)
class DaySummary:
    total_time_seconds: int
    exercises_completed: int
    blocks_completed: int
