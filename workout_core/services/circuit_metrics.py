"""Derived circuit metrics and scores. Always recomputed from the session, never stored."""

from __future__ import annotations

from workout_core.models import BlockType, CircuitMetrics, CircuitSessionData, Round, RoundBreakdown
from workout_core.services.timer import format_clock


def _partial_reps(round_: Round) -> int:
    return sum(entry.actual_reps for entry in round_.exercises if entry.completed)


def in_progress_reps(session: CircuitSessionData) -> int:
    """Reps on completed entries of rounds that are neither closed nor skipped."""
    return sum(_partial_reps(r) for r in session.rounds if not r.is_completed and not r.is_skipped)


def round_breakdown(session: CircuitSessionData) -> tuple[RoundBreakdown, ...]:
    """Completed rounds with their duration, taken as the gap between completion stamps."""
    breakdown = []
    previous_stamp = 0
    for round_ in session.completed_rounds:
        stamp = round_.elapsed_seconds if round_.elapsed_seconds is not None else previous_stamp
        breakdown.append(
            RoundBreakdown(
                round_number=round_.round_number,
                total_reps=round_.total_reps,
                time_seconds=max(0, stamp - previous_stamp),
                completed_exercises=sum(1 for entry in round_.exercises if entry.completed),
            )
        )
        previous_stamp = max(previous_stamp, stamp)
    return tuple(breakdown)


def circuit_score(session: CircuitSessionData, rounds_completed: int, total_reps: int) -> str:
    block_type = session.block_type
    if block_type is BlockType.amrap:
        partial = in_progress_reps(session)
        return f"{rounds_completed}+{partial}" if partial > 0 else str(rounds_completed)
    if block_type is BlockType.for_time:
        return format_clock(session.timer.elapsed_seconds)
    if block_type is BlockType.emom:
        return f"{rounds_completed}/{session.target_rounds or rounds_completed}"
    if block_type is BlockType.tabata:
        return f"{total_reps} reps"
    return f"{rounds_completed} rounds"


def compute_metrics(session: CircuitSessionData) -> CircuitMetrics:
    """Summarize a circuit session.

    ``total_reps`` counts completed rounds plus the entries already ticked off
    in the open round. Untouched entries still hold their seeded target reps
    and are not counted.
    """
    completed = session.completed_rounds
    total_reps = sum(r.total_reps for r in completed) + in_progress_reps(session)
    breakdown = round_breakdown(session)
    average = None
    if breakdown:
        average = sum(item.time_seconds for item in breakdown) / len(breakdown)
    return CircuitMetrics(
        rounds_completed=len(completed),
        total_reps=total_reps,
        total_time_minutes=round(session.timer.elapsed_seconds / 60.0, 2),
        score=circuit_score(session, len(completed), total_reps),
        average_round_time=average,
        round_breakdown=breakdown,
    )
