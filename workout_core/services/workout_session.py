"""Whole-day workout flow: exercise cursor, per-exercise progress, timers and logging.

The orchestrator walks the day's exercises in block order. Regular and
warm-up/cool-down exercises are logged one at a time; a circuit-type block is
handed to a ``CircuitSessionStore`` and logged as a unit when it completes.
Remote calls go through a ``WorkoutLogApi``; when one fails the local state is
kept and the cursor stays put, so the same action can be retried.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable

from workout_core.config import Settings, get_settings
from workout_core.errors import InvariantViolation, ValidationError
from workout_core.logging_config import event_fields
from workout_core.models import DaySummary, ExerciseProgress, ExerciseSet, WorkoutStatus
from workout_core.services.block_rules import is_circuit_block, is_warmup_cooldown_block
from workout_core.services.circuit_session import CircuitSessionStore
from workout_core.services.cues import CueEvent, CueSink, emit_cue
from workout_core.services.logging_api import ExerciseLogRequest, SetPayload, WorkoutLogApi
from workout_core.services.timer import TimerCoordinator, TimerEnvironment
from workout_core.validators import BlockDefinition, ExerciseDefinition, PlanDayWithBlocks

logger = logging.getLogger(__name__)

DashboardRefresh = Callable[[dt.date, dt.date], Awaitable[None]]

NO_PROGRESS_TITLE = "No Progress Logged"
NO_PROGRESS_DESCRIPTION = "Please log your exercise progress before completing this exercise."
SKIP_UNAVAILABLE = "Skip unavailable"


@dataclass(frozen=True)
class CompletionResult:
    success: bool
    workout_complete: bool = False
    error_title: str | None = None
    error_description: str | None = None

    @classmethod
    def refused(cls, error: ValidationError) -> "CompletionResult":
        return cls(success=False, error_title=error.title, error_description=error.description)


class WorkoutSessionOrchestrator:
    def __init__(
        self,
        api: WorkoutLogApi,
        *,
        settings: Settings | None = None,
        env: TimerEnvironment | None = None,
        cues: CueSink | None = None,
        refresh_dashboard: DashboardRefresh | None = None,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self.api = api
        self.settings = settings or get_settings()
        self.env = env or TimerEnvironment(tick_seconds=self.settings.tick_seconds)
        self.cues = cues
        self._refresh_dashboard = refresh_dashboard
        self._today = today

        self.day: PlanDayWithBlocks | None = None
        self.exercises: tuple[ExerciseDefinition, ...] = ()
        self.progress: tuple[ExerciseProgress, ...] = ()
        self.cursor = 0
        self.status = WorkoutStatus.not_started
        self.skipped: tuple[int, ...] = ()
        self.summary: DaySummary | None = None
        self.circuit_store: CircuitSessionStore | None = None
        self._active_block_id: int | None = None
        self._torn_down = False

        self.workout_timer = TimerCoordinator("workout", env=self.env)
        self.exercise_timer = TimerCoordinator("exercise", env=self.env)
        self.rest_timer = TimerCoordinator("rest", env=self.env, on_expire=self._rest_finished)

    # -- derived --

    @property
    def current_exercise(self) -> ExerciseDefinition | None:
        if 0 <= self.cursor < len(self.exercises):
            return self.exercises[self.cursor]
        return None

    @property
    def current_progress(self) -> ExerciseProgress | None:
        if 0 <= self.cursor < len(self.progress):
            return self.progress[self.cursor]
        return None

    @property
    def current_block(self) -> BlockDefinition | None:
        exercise = self.current_exercise
        if exercise is None or self.day is None:
            return None
        return self.day.block_for_exercise(exercise.id)

    @property
    def is_current_block_circuit(self) -> bool:
        block = self.current_block
        return block is not None and is_circuit_block(block.block_type)

    @property
    def is_current_block_warmup_cooldown(self) -> bool:
        block = self.current_block
        return block is not None and is_warmup_cooldown_block(block.block_type)

    @property
    def progress_percent(self) -> int:
        if not self.exercises:
            return 0
        return min(100, int(self.cursor * 100 / len(self.exercises)))

    @property
    def is_paused(self) -> bool:
        return self.workout_timer.state.is_paused

    def blocks_touched(self) -> int:
        """Distinct blocks with at least one exercise completed or skipped."""
        if self.day is None:
            return 0
        touched = set()
        for exercise, progress in zip(self.exercises, self.progress):
            if progress.is_completed or progress.is_skipped:
                block = self.day.block_for_exercise(exercise.id)
                if block is not None:
                    touched.add(block.id)
        return len(touched)

    # -- lifecycle --

    def load(self, day: PlanDayWithBlocks) -> WorkoutStatus:
        """Flatten the day's exercises and seed one progress entry each."""
        self._stop_everything()
        self._torn_down = False
        self.day = day
        self.exercises = tuple(ex for block in day.blocks for ex in block.exercises)
        self.progress = tuple(ExerciseProgress() for _ in self.exercises)
        self.skipped = ()
        self.summary = None
        self._active_block_id = None
        if day.is_complete:
            self.status = WorkoutStatus.completed
            self.cursor = len(self.exercises)
        else:
            self.status = WorkoutStatus.not_started
            self.cursor = 0
        logger.info(
            "Workout day loaded",
            extra=event_fields(plan_day_id=day.id, exercises=len(self.exercises), status=self.status.value),
        )
        return self.status

    def start(self) -> WorkoutStatus:
        if not self._live("start") or self.day is None or self.status is not WorkoutStatus.not_started:
            return self.status
        self.status = WorkoutStatus.in_progress
        if self.cues is not None:
            try:
                self.cues.initialize()
            except Exception:
                logger.warning("Cue sink failed to initialize", exc_info=True)
        self.workout_timer.start()
        self.exercise_timer.start()
        emit_cue(self.cues, CueEvent.workout_started, {"plan_day_id": self.day.id, "workout_id": self.day.workout_id})
        logger.info("Workout started", extra=event_fields(plan_day_id=self.day.id))
        self._activate_block()
        return self.status

    def toggle_pause(self) -> bool:
        """Pause or resume every running timer. Returns the new paused flag."""
        if not self._live("toggle_pause") or self.status is not WorkoutStatus.in_progress:
            return self.is_paused
        store = self.circuit_store
        if self.workout_timer.state.is_running:
            self.workout_timer.pause()
            self.exercise_timer.pause()
            if store is not None and store.session.timer.is_running:
                store.toggle_timer()
        else:
            self.workout_timer.resume()
            # an exercise entered while paused has not started yet
            if self.exercise_timer.state.is_active:
                self.exercise_timer.resume()
            else:
                self.exercise_timer.start()
            if store is not None and store.session.timer.is_paused:
                store.toggle_timer()
        return self.is_paused

    def start_rest(self, seconds: int) -> None:
        if not self._live("start_rest") or seconds <= 0:
            return
        self.rest_timer.start(target_seconds=int(seconds))
        if self.current_progress is not None:
            self.update_progress(rest_time=int(seconds))
        emit_cue(self.cues, CueEvent.rest_started, {"seconds": int(seconds)})

    def skip_rest(self) -> None:
        self.rest_timer.cancel()

    def resynchronize(self, now: dt.datetime | None = None) -> None:
        """Host came back to the foreground: recompute every timer from the wall clock."""
        if not self._live("resynchronize"):
            return
        self.workout_timer.resynchronize(now)
        self.exercise_timer.resynchronize(now)
        self.rest_timer.resynchronize(now)
        if self.circuit_store is not None:
            self.circuit_store.resynchronize(now)

    def teardown(self) -> None:
        if self._torn_down:
            return
        self._stop_everything()
        self._torn_down = True
        if self.cues is not None:
            try:
                self.cues.cleanup()
            except Exception:
                logger.warning("Cue sink failed to clean up", exc_info=True)

    # -- progress --

    def update_progress(self, **changes: Any) -> ExerciseProgress | None:
        progress = self.current_progress
        if not self._live("update_progress") or progress is None:
            return progress
        return self._set_progress(self.cursor, replace(progress, **changes))

    def log_set(self, reps: int, weight: float | None = None) -> ExerciseProgress | None:
        progress = self.current_progress
        if not self._live("log_set") or progress is None:
            return progress
        reps = max(0, int(reps))
        weight = max(0.0, float(weight or 0.0))
        new_set = ExerciseSet(round_number=1, set_number=len(progress.sets) + 1, weight=weight, reps=reps)
        return self._set_progress(
            self.cursor,
            replace(
                progress,
                sets=progress.sets + (new_set,),
                sets_completed=progress.sets_completed + 1,
                reps_completed=progress.reps_completed + reps,
                weight_used=max(progress.weight_used, weight),
            ),
        )

    # -- completion --

    async def complete_exercise(self, notes: str | None = None) -> CompletionResult:
        """Log the current exercise (or the whole current circuit block) and move on.

        Refusals come back as a failed ``CompletionResult``; a failing logging
        call raises ``TransientIOError`` with the cursor unchanged.
        """
        if not self._live("complete_exercise"):
            return CompletionResult(success=False)
        exercise = self.current_exercise
        if self.day is None or exercise is None or self.status is not WorkoutStatus.in_progress:
            return CompletionResult(success=False)
        try:
            if self.is_current_block_warmup_cooldown:
                return await self._complete_warmup_cooldown(exercise, notes)
            if self.is_current_block_circuit:
                return await self._complete_circuit_block(self.day, self.current_block, notes)
            return await self._complete_regular(exercise, notes)
        except ValidationError as e:
            logger.info("Exercise completion refused: %s", e.title, extra=event_fields(exercise_id=exercise.id))
            return CompletionResult.refused(e)

    async def skip_exercise(self) -> CompletionResult:
        if not self._live("skip_exercise"):
            return CompletionResult(success=False)
        exercise = self.current_exercise
        if self.day is None or exercise is None or self.status is not WorkoutStatus.in_progress:
            return CompletionResult(success=False)
        if self.is_current_block_circuit:
            return CompletionResult.refused(
                ValidationError(SKIP_UNAVAILABLE, "Circuit blocks are completed or skipped round by round.")
            )

        if exercise.id not in self.skipped:
            self.skipped = self.skipped + (exercise.id,)
        self._set_progress(self.cursor, replace(self.progress[self.cursor], is_skipped=True))
        await self.api.skip_exercise(self.day.workout_id, exercise.id)
        logger.info("Exercise skipped", extra=event_fields(workout_id=self.day.workout_id, exercise_id=exercise.id))
        return await self._move_to(self.cursor + 1)

    async def complete_day(self) -> DaySummary | None:
        """Persist the day's totals, stop every timer and refresh dependent dashboards."""
        if self.day is None:
            return None
        if self.status is WorkoutStatus.completed:
            return self.summary

        summary = DaySummary(
            total_time_seconds=self.workout_timer.elapsed_seconds,
            exercises_completed=len(self.exercises) - len(self.skipped),
            blocks_completed=self.blocks_touched(),
        )
        await self.api.mark_day_complete(self.day.id, summary)

        self.summary = summary
        self.status = WorkoutStatus.completed
        self.cursor = len(self.exercises)
        self._stop_everything()
        emit_cue(
            self.cues,
            CueEvent.workout_completed,
            {"plan_day_id": self.day.id, "total_time_seconds": summary.total_time_seconds},
        )
        logger.info(
            "Workout day completed",
            extra=event_fields(
                plan_day_id=self.day.id,
                total_time_seconds=summary.total_time_seconds,
                exercises_completed=summary.exercises_completed,
                blocks_completed=summary.blocks_completed,
            ),
        )
        await self._refresh_dashboards()
        return summary

    # -- internals --

    async def _complete_warmup_cooldown(self, exercise: ExerciseDefinition, notes: str | None) -> CompletionResult:
        progress = self.progress[self.cursor]
        await self.api.log_exercise_completion(
            ExerciseLogRequest(
                plan_day_exercise_id=exercise.id,
                sets=[SetPayload(round_number=1, set_number=1, weight=0.0, reps=exercise.reps or 1)],
                duration_completed=exercise.duration or 0,
                is_complete=True,
                time_taken=self.exercise_timer.elapsed_seconds,
                notes=notes or progress.notes,
            )
        )
        self._mark_completed(self.cursor, notes)
        return await self._move_to(self.cursor + 1)

    async def _complete_regular(self, exercise: ExerciseDefinition, notes: str | None) -> CompletionResult:
        progress = self.progress[self.cursor]
        has_sets = bool(progress.sets)
        has_duration = progress.duration > 0
        if not (has_sets or has_duration or exercise.is_duration_based):
            raise ValidationError(NO_PROGRESS_TITLE, NO_PROGRESS_DESCRIPTION)

        sets = [
            SetPayload(round_number=s.round_number, set_number=s.set_number, weight=s.weight, reps=s.reps)
            for s in progress.sets
        ]
        if not sets and exercise.is_duration_based:
            sets = [SetPayload(round_number=1, set_number=1, weight=exercise.weight or 0.0, reps=0)]

        await self.api.log_exercise_completion(
            ExerciseLogRequest(
                plan_day_exercise_id=exercise.id,
                sets=sets,
                duration_completed=progress.duration,
                is_complete=True,
                time_taken=self.exercise_timer.elapsed_seconds,
                notes=notes or progress.notes,
            )
        )
        self._mark_completed(self.cursor, notes)
        return await self._move_to(self.cursor + 1)

    async def _complete_circuit_block(self, day: PlanDayWithBlocks, block: BlockDefinition, notes: str | None) -> CompletionResult:
        store = self._activate_block() or CircuitSessionStore(block, settings=self.settings, env=self.env, cues=self.cues)
        metrics = store.complete_circuit(notes)
        session = store.session

        for round_ in session.rounds:
            if round_.is_skipped:
                continue
            if round_.is_completed or any(entry.completed for entry in round_.exercises):
                await self.api.log_circuit_round(day.workout_id, block.id, round_)
        await self.api.mark_block_exercises_complete(day.workout_id, block)

        indices = [i for i, ex in enumerate(self.exercises) if any(ex.id == b.id for b in block.exercises)]
        for index in indices:
            exercise = self.exercises[index]
            reps = sum(
                entry.actual_reps
                for round_ in session.completed_rounds
                for entry in round_.exercises
                if entry.plan_day_exercise_id == exercise.id
            )
            self._set_progress(
                index,
                replace(
                    self.progress[index],
                    sets_completed=exercise.sets or 1,
                    reps_completed=reps,
                    rounds_completed=metrics.rounds_completed,
                    is_completed=True,
                ),
            )
        logger.info(
            "Circuit block logged",
            extra=event_fields(block_id=block.id, rounds_completed=metrics.rounds_completed, score=metrics.score),
        )
        return await self._move_to(max(indices) + 1)

    async def _move_to(self, index: int) -> CompletionResult:
        if index < len(self.exercises):
            self.cursor = index
            self.exercise_timer.reset()
            if self.workout_timer.state.is_running:
                self.exercise_timer.start()
            self._activate_block()
            return CompletionResult(success=True)
        await self.complete_day()
        return CompletionResult(success=True, workout_complete=True)

    def _mark_completed(self, index: int, notes: str | None) -> None:
        progress = self.progress[index]
        self._set_progress(
            index,
            replace(
                progress,
                is_completed=True,
                duration=progress.duration or self.exercise_timer.elapsed_seconds,
                notes=notes or progress.notes,
            ),
        )
        emit_cue(self.cues, CueEvent.exercise_completed, {"exercise_id": self.exercises[index].id})

    def _set_progress(self, index: int, progress: ExerciseProgress) -> ExerciseProgress:
        self.progress = self.progress[:index] + (progress,) + self.progress[index + 1 :]
        return progress

    def _activate_block(self) -> CircuitSessionStore | None:
        """Keep exactly one circuit store alive, scoped to the current block."""
        block = self.current_block
        if block is None:
            return self.circuit_store
        if block.id != self._active_block_id:
            self._active_block_id = block.id
            emit_cue(
                self.cues,
                CueEvent.block_started,
                {"block_id": block.id, "block_type": block.block_type.value if block.block_type else None},
            )
        if not is_circuit_block(block.block_type):
            self._dispose_store()
            return None
        if self.circuit_store is None or self.circuit_store.block.id != block.id:
            self._dispose_store()
            self.circuit_store = CircuitSessionStore(block, settings=self.settings, env=self.env, cues=self.cues)
        return self.circuit_store

    def _dispose_store(self) -> None:
        if self.circuit_store is not None:
            self.circuit_store.dispose()
            self.circuit_store = None

    def _stop_everything(self) -> None:
        self.workout_timer.cancel()
        self.exercise_timer.cancel()
        self.rest_timer.cancel()
        self._dispose_store()

    def _rest_finished(self, _state) -> None:
        emit_cue(self.cues, CueEvent.rest_completed, {})

    async def _refresh_dashboards(self) -> None:
        if self._refresh_dashboard is None:
            return
        today = self._today()
        start = today - dt.timedelta(days=self.settings.dashboard_lookback_days)
        end = today + dt.timedelta(days=self.settings.dashboard_lookahead_days)
        try:
            await self._refresh_dashboard(start, end)
        except Exception:
            logger.warning("Dashboard refresh failed", exc_info=True)

    def _live(self, operation: str) -> bool:
        if not self._torn_down:
            return True
        logger.warning("%s", InvariantViolation(f"{operation} called after the workout session was torn down"))
        return False
