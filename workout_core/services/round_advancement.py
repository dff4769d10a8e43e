"""Decides which round comes next once the current one closes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from workout_core.models import BlockType, CircuitSessionData, ExerciseLogEntry, Round
from workout_core.validators import ExerciseDefinition

# Block types that append a fresh round every time one closes.
OPEN_ENDED_TYPES = frozenset({BlockType.amrap, BlockType.tabata, BlockType.emom})


@dataclass(frozen=True)
class RoundPatch:
    rounds: tuple[Round, ...]
    current_round: int

    def changed(self, session: CircuitSessionData) -> bool:
        return self.current_round != session.current_round or len(self.rounds) != len(session.rounds)


def create_entry(exercise: ExerciseDefinition, rep_targets: Mapping[int, int] | None = None) -> ExerciseLogEntry:
    target = exercise.reps or 0
    if rep_targets and exercise.id in rep_targets:
        target = max(0, int(rep_targets[exercise.id]))
    return ExerciseLogEntry(
        exercise_id=exercise.catalog_id,
        plan_day_exercise_id=exercise.id,
        target_reps=target,
        actual_reps=target,
        weight=exercise.weight,
    )


def create_round(
    round_number: int,
    exercises: Sequence[ExerciseDefinition],
    rep_targets: Mapping[int, int] | None = None,
) -> Round:
    """A fresh round with one entry per block exercise, actual reps seeded from the targets."""
    return Round(
        round_number=round_number,
        exercises=tuple(create_entry(ex, rep_targets) for ex in exercises),
    )


def advance(
    session: CircuitSessionData,
    exercises: Sequence[ExerciseDefinition],
    rep_targets: Mapping[int, int] | None = None,
) -> RoundPatch:
    """Next-round patch for a session whose current round was just closed.

    AMRAP, Tabata and EMOM always append a round at default targets (Tabata
    stops at its interval count). Every other type moves forward only while
    the target round count allows and reuses a round that already exists.
    """
    current = session.current_round
    if session.block_type is BlockType.tabata and session.target_rounds and current >= session.target_rounds:
        # the protocol has a fixed number of intervals
        return RoundPatch(rounds=session.rounds, current_round=current)
    if session.block_type in OPEN_ENDED_TYPES:
        next_number = current + 1
        return RoundPatch(
            rounds=session.rounds + (create_round(next_number, exercises, rep_targets),),
            current_round=next_number,
        )

    target = session.target_rounds
    if target is not None and current >= target:
        return RoundPatch(rounds=session.rounds, current_round=current)

    next_number = current + 1
    rounds = session.rounds
    if len(rounds) < next_number:
        rounds = rounds + (create_round(next_number, exercises, rep_targets),)
    return RoundPatch(rounds=rounds, current_round=next_number)
