"""Round-by-round state for one circuit-type block.

The module-level functions are pure reducers over ``CircuitSessionData``.
``CircuitSessionStore`` owns one session plus its timer, and wires timer ticks
to EMOM minute handling and the auto-completion rules.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Mapping

from workout_core.config import Settings, get_settings
from workout_core.errors import (
    CIRCUIT_ALREADY_COMPLETED,
    NO_PROGRESS_LOGGED,
    ROUND_ALREADY_COMPLETED,
    InvariantViolation,
    TimerSchedulingError,
    ValidationError,
)
from workout_core.logging_config import event_fields
from workout_core.models import BlockType, CircuitMetrics, CircuitSessionData, ExerciseLogEntry, Round, TimerState
from workout_core.services import auto_completion, block_rules
from workout_core.services.circuit_metrics import compute_metrics
from workout_core.services.cues import CueEvent, CueSink, emit_cue
from workout_core.services.round_advancement import RoundPatch, advance, create_round
from workout_core.services.timer import TimerCoordinator, TimerEnvironment, clamp_elapsed, format_clock, stop_timer
from workout_core.validators import BlockDefinition

logger = logging.getLogger(__name__)


# -- Pure reducers --


def initialize_session(
    block: BlockDefinition,
    *,
    rep_targets: Mapping[int, int] | None = None,
    tabata_intervals: int = block_rules.TABATA_INTERVALS,
) -> CircuitSessionData:
    block_type = block.block_type or BlockType.circuit
    return CircuitSessionData(
        block_id=block.id,
        block_type=block_type,
        block_name=block.block_name,
        rounds=(create_round(1, block.exercises, rep_targets),),
        target_rounds=block_rules.target_rounds_for(
            block_type, block.rounds, block.time_cap_minutes, tabata_intervals=tabata_intervals
        ),
        time_cap_minutes=block.time_cap_minutes,
    )


def _edit_current_entry(
    session: CircuitSessionData,
    exercise_id: int,
    edit: Callable[[ExerciseLogEntry], ExerciseLogEntry],
) -> CircuitSessionData:
    current = session.current_round_data
    if session.is_completed or current is None or current.is_completed or current.is_skipped:
        return session
    for index, entry in enumerate(current.exercises):
        if entry.exercise_id == exercise_id:
            exercises = current.exercises[:index] + (edit(entry),) + current.exercises[index + 1 :]
            return _replace_current_round(session, replace(current, exercises=exercises))
    return session


def _replace_current_round(session: CircuitSessionData, round_: Round) -> CircuitSessionData:
    index = session.current_round - 1
    rounds = session.rounds[:index] + (round_,) + session.rounds[index + 1 :]
    return replace(session, rounds=rounds)


def update_exercise_reps(session: CircuitSessionData, exercise_id: int, reps: int) -> CircuitSessionData:
    reps = max(0, int(reps))
    return _edit_current_entry(session, exercise_id, lambda e: replace(e, actual_reps=reps, completed=reps > 0))


def update_exercise_weight(session: CircuitSessionData, exercise_id: int, weight: float) -> CircuitSessionData:
    weight = max(0.0, float(weight))
    return _edit_current_entry(session, exercise_id, lambda e: replace(e, weight=weight))


def close_round(
    session: CircuitSessionData,
    *,
    now: datetime,
    elapsed_seconds: int,
    notes: str | None = None,
    require_progress: bool = True,
) -> CircuitSessionData:
    """Mark the current round completed. Raises ``ValidationError`` and leaves state untouched on refusal."""
    if session.is_completed:
        raise ValidationError(CIRCUIT_ALREADY_COMPLETED, "Reset the block to log more rounds.")
    current = session.current_round_data
    if current is None or current.is_completed or current.is_skipped:
        raise ValidationError(ROUND_ALREADY_COMPLETED, f"Round {session.current_round} is already closed.")
    if require_progress and not current.has_logged_reps:
        raise ValidationError(NO_PROGRESS_LOGGED, "Complete at least one exercise to finish the round.")
    closed = replace(
        current,
        is_completed=True,
        completed_at=now,
        elapsed_seconds=elapsed_seconds,
        notes=notes or current.notes,
    )
    return _replace_current_round(session, closed)


def skip_current_round(session: CircuitSessionData, reason: str | None = None) -> CircuitSessionData:
    current = session.current_round_data
    if session.is_completed or current is None or current.is_completed or current.is_skipped:
        return session
    return _replace_current_round(session, replace(current, is_skipped=True, notes=reason or current.notes))


def apply_patch(session: CircuitSessionData, patch: RoundPatch) -> CircuitSessionData:
    return replace(session, rounds=patch.rounds, current_round=patch.current_round)


def finish_session(
    session: CircuitSessionData,
    *,
    now: datetime,
    notes: str | None = None,
    reason: str | None = None,
    clamp_elapsed_to: int | None = None,
) -> CircuitSessionData:
    if session.is_completed:
        return session
    timer = stop_timer(session.timer)
    if clamp_elapsed_to is not None:
        timer = clamp_elapsed(timer, clamp_elapsed_to)
    return replace(
        session,
        is_completed=True,
        completed_at=now,
        notes=notes or session.notes,
        completion_reason=reason,
        timer=timer,
    )


def can_complete_round(session: CircuitSessionData, *, allow_partial_rounds: bool = False) -> bool:
    current = session.current_round_data
    if session.is_completed or current is None or current.is_completed or current.is_skipped:
        return False
    return allow_partial_rounds or current.has_logged_reps


def can_complete_circuit(session: CircuitSessionData) -> bool:
    if session.is_completed:
        return False
    current = session.current_round_data
    return bool(session.completed_rounds) or bool(current and current.has_logged_reps)


# -- Store --


class CircuitSessionStore:
    """Owns the ``CircuitSessionData`` of one circuit block and the timer driving it.

    Every public mutation on a disposed store is logged as an
    ``InvariantViolation`` and ignored.
    """

    def __init__(
        self,
        block: BlockDefinition,
        *,
        settings: Settings | None = None,
        env: TimerEnvironment | None = None,
        cues: CueSink | None = None,
        rep_targets: Mapping[int, int] | None = None,
        auto_start: bool | None = None,
        on_completed: Callable[[CircuitSessionData], None] | None = None,
    ) -> None:
        self.block = block
        self._settings = settings or get_settings()
        self._env = env or TimerEnvironment(tick_seconds=self._settings.tick_seconds)
        self._cues = cues
        self._rep_targets = dict(rep_targets or {})
        self._on_completed = on_completed
        self._disposed = False
        self._timer = TimerCoordinator(
            f"circuit-{block.id}",
            env=self._env,
            on_tick=self._handle_tick,
            on_fault=self._handle_fault,
        )
        self._session = self._fresh_session()
        if self._settings.auto_start_timer if auto_start is None else auto_start:
            self.start()

    # -- derived --

    @property
    def session(self) -> CircuitSessionData:
        return self._session

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def timer(self) -> TimerCoordinator:
        return self._timer

    @property
    def metrics(self) -> CircuitMetrics:
        return compute_metrics(self._session)

    @property
    def current_round_data(self) -> Round | None:
        return self._session.current_round_data

    @property
    def can_complete_round(self) -> bool:
        return can_complete_round(self._session, allow_partial_rounds=self._settings.allow_partial_rounds)

    @property
    def can_complete_circuit(self) -> bool:
        return can_complete_circuit(self._session)

    @property
    def timer_display(self) -> block_rules.TimerDisplay:
        session = self._session
        seconds = block_rules.display_seconds(
            session.block_type,
            session.timer,
            session.time_cap_minutes,
            work_seconds=self._settings.tabata_work_seconds,
            rest_seconds=self._settings.tabata_rest_seconds,
        )
        return block_rules.TimerDisplay(
            seconds=seconds,
            clock=format_clock(seconds),
            label=block_rules.timer_label(session.block_type, session.timer, session.time_cap_minutes),
            interval=block_rules.interval_label(session.block_type, session.timer, session.target_rounds),
        )

    @property
    def button_text(self) -> str | None:
        return block_rules.round_complete_button_text(
            self._session.block_type, self._session.current_round, self._session.target_rounds
        )

    @property
    def instructions(self) -> str:
        return block_rules.instruction_text(
            self._session.block_type, self._session.time_cap_minutes, self._session.target_rounds
        )

    # -- lifecycle --

    def start(self) -> CircuitSessionData:
        if not self._live("start") or self._session.is_completed:
            return self._session
        if self._timer.state.is_active:
            return self._session
        state = self._timer.start()
        self._session = replace(self._session, started_at=self._session.started_at or self._env.now())
        self._apply_timer(state)
        logger.info(
            "Circuit session started",
            extra=event_fields(
                block_id=self._session.block_id,
                block_type=self._session.block_type.value,
                target_rounds=self._session.target_rounds,
            ),
        )
        return self._session

    def reset(self) -> CircuitSessionData:
        if not self._live("reset"):
            return self._session
        self._timer.reset()
        self._session = self._fresh_session()
        logger.info("Circuit session reset", extra=event_fields(block_id=self.block.id))
        return self._session

    def dispose(self) -> None:
        if self._disposed:
            return
        self._timer.cancel()
        self._disposed = True
        logger.debug("Circuit store disposed", extra=event_fields(block_id=self.block.id))

    def resynchronize(self, now: datetime | None = None) -> CircuitSessionData:
        if not self._live("resynchronize"):
            return self._session
        self._timer.resynchronize(now)
        return self._session

    def toggle_timer(self) -> CircuitSessionData:
        if not self._live("toggle_timer") or self._session.is_completed:
            return self._session
        if not self._timer.state.is_active:
            return self.start()
        self._apply_timer(self._timer.toggle())
        return self._session

    # -- mutations --

    def update_exercise_reps(self, exercise_id: int, reps: int) -> CircuitSessionData:
        if self._live("update_exercise_reps") and not self._catch_up():
            self._session = update_exercise_reps(self._session, exercise_id, reps)
        return self._session

    def update_exercise_weight(self, exercise_id: int, weight: float) -> CircuitSessionData:
        if self._live("update_exercise_weight") and not self._catch_up():
            self._session = update_exercise_weight(self._session, exercise_id, weight)
        return self._session

    def complete_round(self, notes: str | None = None) -> CircuitSessionData:
        if not self._live("complete_round") or self._catch_up():
            return self._session
        self._close_round(notes=notes, require_progress=not self._settings.allow_partial_rounds)
        return self._session

    def skip_round(self, reason: str | None = None) -> CircuitSessionData:
        if not self._live("skip_round") or self._catch_up():
            return self._session
        round_number = self._session.current_round
        skipped = skip_current_round(self._session, reason)
        if skipped is self._session:
            return self._session
        self._session = apply_patch(skipped, self._advance(skipped))
        logger.info(
            "Circuit round skipped",
            extra=event_fields(
                block_id=self._session.block_id,
                round_number=round_number,
                reason=reason or "No reason provided",
            ),
        )
        return self._session

    def complete_circuit(self, notes: str | None = None, *, reason: str | None = None) -> CircuitMetrics:
        """Stop the block and return its final metrics. Calling it again returns the same metrics."""
        if not self._live("complete_circuit") or self._session.is_completed or self._catch_up():
            return self.metrics
        self._finish(notes=notes, reason=reason)
        return self.metrics

    # -- internals --

    def _fresh_session(self) -> CircuitSessionData:
        return initialize_session(
            self.block,
            rep_targets=self._rep_targets,
            tabata_intervals=self._settings.tabata_intervals,
        )

    def _live(self, operation: str) -> bool:
        if not self._disposed:
            return True
        violation = InvariantViolation(f"{operation} called on disposed circuit store for block {self.block.id}")
        logger.warning("%s", violation)
        return False

    def _advance(self, session: CircuitSessionData) -> RoundPatch:
        return advance(session, self.block.exercises, self._rep_targets)

    def _close_round(self, *, notes: str | None, require_progress: bool) -> None:
        before = self._session
        self._session = close_round(
            before,
            now=self._env.now(),
            elapsed_seconds=before.timer.elapsed_seconds,
            notes=notes,
            require_progress=require_progress,
        )
        closed = before.current_round_data
        logger.info(
            "Circuit round completed",
            extra=event_fields(
                block_id=before.block_id,
                round_number=before.current_round,
                total_reps=closed.total_reps if closed else 0,
            ),
        )
        emit_cue(
            self._cues,
            CueEvent.round_completed,
            {"block_id": before.block_id, "round_number": before.current_round},
        )
        if not self._check_auto_completion():
            self._session = apply_patch(self._session, self._advance(self._session))

    def _check_auto_completion(self) -> bool:
        decision = auto_completion.evaluate(self._session, tabata_intervals=self._settings.tabata_intervals)
        if decision is None:
            return False
        self._finish(reason=decision.reason, clamp_elapsed_to=decision.clamp_elapsed_to)
        return True

    def _finish(
        self,
        *,
        notes: str | None = None,
        reason: str | None = None,
        clamp_elapsed_to: int | None = None,
    ) -> None:
        self._apply_timer(self._timer.cancel())
        self._session = finish_session(
            self._session,
            now=self._env.now(),
            notes=notes,
            reason=reason,
            clamp_elapsed_to=clamp_elapsed_to,
        )
        metrics = self.metrics
        logger.info(
            "Circuit session completed",
            extra=event_fields(
                block_id=self._session.block_id,
                block_type=self._session.block_type.value,
                rounds_completed=metrics.rounds_completed,
                total_reps=metrics.total_reps,
                total_time_minutes=metrics.total_time_minutes,
                score=metrics.score,
                reason=reason,
            ),
        )
        emit_cue(
            self._cues,
            CueEvent.circuit_completed,
            {"block_id": self._session.block_id, "score": metrics.score, "reason": reason},
        )
        if self._on_completed is not None:
            self._on_completed(self._session)

    def _sync_elapsed(self) -> None:
        if self._timer.state.is_active:
            self._apply_timer(replace(self._timer.state, elapsed_seconds=self._timer.elapsed_seconds))

    def _catch_up(self) -> bool:
        """Apply time that passed without ticks (host suspended). True when that ended the block."""
        if self._session.is_completed or not self._timer.state.is_active:
            return False
        self._sync_elapsed()
        if self._session.block_type is BlockType.emom and self._settings.emom_auto_advance:
            self._advance_emom_minutes()
        if not self._session.is_completed:
            self._check_auto_completion()
        return self._session.is_completed

    def _apply_timer(self, state: TimerState) -> None:
        if state.started_at is not None:
            if self._session.block_type is BlockType.tabata:
                interval, is_work = block_rules.tabata_phase(
                    state.elapsed_seconds,
                    work_seconds=self._settings.tabata_work_seconds,
                    rest_seconds=self._settings.tabata_rest_seconds,
                )
                state = replace(state, current_interval=interval, is_work_phase=is_work)
            elif self._session.block_type is BlockType.emom:
                state = replace(state, current_interval=block_rules.emom_minute(state.elapsed_seconds))
        self._session = replace(self._session, timer=state)

    def _advance_emom_minutes(self) -> None:
        minute = self._session.timer.current_interval or 1
        while not self._session.is_completed and self._session.current_round < minute:
            current = self._session.current_round_data
            if current is None or current.is_completed or current.is_skipped:
                break
            self._close_round(notes=None, require_progress=False)

    def _handle_tick(self, state: TimerState) -> None:
        if self._disposed or self._session.is_completed:
            return
        self._apply_timer(state)
        if self._session.block_type is BlockType.emom and self._settings.emom_auto_advance:
            self._advance_emom_minutes()
        if not self._session.is_completed:
            self._check_auto_completion()

    def _handle_fault(self, exc: TimerSchedulingError) -> None:
        self._apply_timer(self._timer.state)
        logger.error(
            "Circuit timer faulted",
            extra=event_fields(block_id=self.block.id, error=str(exc)),
        )
