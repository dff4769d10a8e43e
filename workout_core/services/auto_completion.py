"""Rules that end a circuit block without the user asking."""

from __future__ import annotations

from dataclasses import dataclass

from workout_core.models import BlockType, CircuitSessionData
from workout_core.services.block_rules import TABATA_INTERVALS

TIME_CAP_REACHED = "Time cap reached"
TARGET_ROUNDS_COMPLETED = "Target rounds completed"
TARGET_MINUTES_COMPLETED = "Target minutes completed"
TABATA_PROTOCOL_COMPLETED = "Tabata protocol completed"


@dataclass(frozen=True)
class CompletionDecision:
    reason: str
    # AMRAP elapsed is clamped to the cap so overshoot between ticks never shows up.
    clamp_elapsed_to: int | None = None


def evaluate(session: CircuitSessionData, *, tabata_intervals: int = TABATA_INTERVALS) -> CompletionDecision | None:
    """First matching rule wins; a completed session never matches."""
    if session.is_completed:
        return None

    completed = len(session.completed_rounds)
    block_type = session.block_type

    if block_type is BlockType.amrap and session.time_cap_minutes:
        cap_seconds = session.time_cap_minutes * 60
        if session.timer.elapsed_seconds >= cap_seconds:
            return CompletionDecision(TIME_CAP_REACHED, clamp_elapsed_to=cap_seconds)

    if block_type is BlockType.for_time and session.target_rounds:
        if completed >= session.target_rounds:
            return CompletionDecision(TARGET_ROUNDS_COMPLETED)

    if block_type is BlockType.emom and session.target_rounds:
        if completed >= session.target_rounds:
            return CompletionDecision(TARGET_MINUTES_COMPLETED)

    if block_type is BlockType.tabata:
        interval = session.timer.current_interval or 0
        if completed >= tabata_intervals or interval > tabata_intervals:
            return CompletionDecision(TABATA_PROTOCOL_COMPLETED)

    return None
