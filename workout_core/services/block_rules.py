"""Block classification, timer profiles and the text shown for each block type."""

from __future__ import annotations

from dataclasses import dataclass

from workout_core.models import BlockType, TimerState

CIRCUIT_BLOCK_TYPES = frozenset(
    {BlockType.amrap, BlockType.emom, BlockType.for_time, BlockType.circuit, BlockType.tabata}
)
TRADITIONAL_BLOCK_TYPES = frozenset(
    {BlockType.traditional, BlockType.superset, BlockType.warmup, BlockType.cooldown, BlockType.flow}
)
WARMUP_COOLDOWN_TYPES = frozenset({BlockType.warmup, BlockType.cooldown})

TABATA_INTERVALS = 8
EMOM_MINUTE_SECONDS = 60


def _coerce(block_type: BlockType | str | None) -> BlockType | None:
    if block_type is None or isinstance(block_type, BlockType):
        return block_type
    try:
        return BlockType(block_type)
    except ValueError:
        return None


def is_circuit_block(block_type: BlockType | str | None) -> bool:
    return _coerce(block_type) in CIRCUIT_BLOCK_TYPES


def is_traditional_block(block_type: BlockType | str | None) -> bool:
    """Untyped blocks count as traditional."""
    coerced = _coerce(block_type)
    return coerced is None or coerced in TRADITIONAL_BLOCK_TYPES


def is_warmup_cooldown_block(block_type: BlockType | str | None) -> bool:
    return _coerce(block_type) in WARMUP_COOLDOWN_TYPES


def logging_interface(block_type: BlockType | str | None) -> str:
    return "circuit" if is_circuit_block(block_type) else "traditional"


@dataclass(frozen=True)
class TimerProfile:
    mode: str  # count_up | count_down | intervals
    has_time_limit: bool
    auto_advance_rounds: bool
    work_interval: int = 0
    rest_interval: int = 0


def timer_profile(block_type: BlockType | str | None, *, work_seconds: int = 20, rest_seconds: int = 10) -> TimerProfile:
    """Timer behaviour per circuit type; unknown types use the plain circuit profile."""
    coerced = _coerce(block_type)
    if coerced is BlockType.amrap:
        return TimerProfile("count_up", has_time_limit=True, auto_advance_rounds=False)
    if coerced is BlockType.emom:
        return TimerProfile("count_down", has_time_limit=False, auto_advance_rounds=True, work_interval=EMOM_MINUTE_SECONDS)
    if coerced is BlockType.for_time:
        return TimerProfile("count_down", has_time_limit=True, auto_advance_rounds=False)
    if coerced is BlockType.tabata:
        return TimerProfile(
            "intervals",
            has_time_limit=False,
            auto_advance_rounds=True,
            work_interval=work_seconds,
            rest_interval=rest_seconds,
        )
    return TimerProfile("count_up", has_time_limit=False, auto_advance_rounds=False)


def target_rounds_for(
    block_type: BlockType | str | None,
    rounds: int | None,
    time_cap_minutes: int | None,
    *,
    tabata_intervals: int = TABATA_INTERVALS,
) -> int | None:
    """EMOM runs one round per capped minute, Tabata a fixed number of intervals."""
    coerced = _coerce(block_type)
    if coerced is BlockType.emom and time_cap_minutes:
        return time_cap_minutes
    if coerced is BlockType.tabata:
        return tabata_intervals
    return rounds


def tabata_phase(elapsed_seconds: int, *, work_seconds: int = 20, rest_seconds: int = 10) -> tuple[int, bool]:
    """Return ``(interval_number, is_work_phase)`` for the given elapsed time."""
    cycle = max(1, work_seconds + rest_seconds)
    elapsed = max(0, elapsed_seconds)
    return elapsed // cycle + 1, (elapsed % cycle) < work_seconds


def emom_minute(elapsed_seconds: int) -> int:
    return max(0, elapsed_seconds) // EMOM_MINUTE_SECONDS + 1


def display_seconds(
    block_type: BlockType | str | None,
    timer: TimerState,
    time_cap_minutes: int | None = None,
    *,
    work_seconds: int = 20,
    rest_seconds: int = 10,
) -> int:
    """Seconds the timer face shows: countdowns where the block has one, elapsed otherwise."""
    coerced = _coerce(block_type)
    elapsed = timer.elapsed_seconds
    if coerced is BlockType.tabata:
        cycle = max(1, work_seconds + rest_seconds)
        in_cycle = elapsed % cycle
        if in_cycle < work_seconds:
            return max(0, work_seconds - in_cycle)
        return max(0, cycle - in_cycle)
    if coerced is BlockType.emom:
        return max(0, EMOM_MINUTE_SECONDS - elapsed % EMOM_MINUTE_SECONDS)
    if coerced in (BlockType.amrap, BlockType.for_time) and time_cap_minutes:
        return max(0, time_cap_minutes * 60 - elapsed)
    return elapsed


def timer_label(block_type: BlockType | str | None, timer: TimerState, time_cap_minutes: int | None = None) -> str:
    coerced = _coerce(block_type)
    if coerced is BlockType.tabata:
        return "WORK" if timer.is_work_phase in (None, True) else "REST"
    if coerced is BlockType.emom:
        return "THIS MINUTE"
    if coerced in (BlockType.amrap, BlockType.for_time) and time_cap_minutes:
        return "TIME LEFT"
    return "ELAPSED"


def interval_label(block_type: BlockType | str | None, timer: TimerState, target_rounds: int | None = None) -> str | None:
    if timer.current_interval is None:
        return None
    coerced = _coerce(block_type)
    if coerced is BlockType.tabata:
        return f"Round {timer.current_interval}/{target_rounds or TABATA_INTERVALS}"
    if coerced is BlockType.emom:
        suffix = f"/{target_rounds}" if target_rounds else ""
        return f"Minute {timer.current_interval}{suffix}"
    return f"Interval {timer.current_interval}"


@dataclass(frozen=True)
class TimerDisplay:
    seconds: int
    clock: str
    label: str
    interval: str | None = None


def round_complete_button_text(
    block_type: BlockType | str | None, current_round: int, total_rounds: int | None = None
) -> str | None:
    """Label for the complete-round action; EMOM rounds close with the minute so there is none."""
    coerced = _coerce(block_type)
    if coerced is BlockType.amrap:
        return "Complete Round"
    if coerced is BlockType.emom:
        return None
    if coerced is BlockType.for_time:
        return "Finish Workout" if total_rounds and current_round >= total_rounds else "Complete Round"
    if coerced is BlockType.tabata:
        return "Complete Tabata" if current_round >= TABATA_INTERVALS else "Complete Interval"
    if total_rounds and current_round > total_rounds:
        return "Complete Additional Round"
    return "Complete Round"


def instruction_text(
    block_type: BlockType | str | None, time_cap_minutes: int | None = None, rounds: int | None = None
) -> str:
    coerced = _coerce(block_type)
    if coerced is BlockType.amrap:
        cap = f" in {time_cap_minutes} minutes" if time_cap_minutes else ""
        return f"Complete as many rounds as possible{cap}. Log your reps for each exercise in each round."
    if coerced is BlockType.emom:
        span = f" for {rounds} minutes" if rounds else ""
        return f"Every minute on the minute{span}, complete the prescribed reps. Log actual reps completed each minute."
    target = f"{rounds} rounds" if rounds else "all rounds"
    if coerced is BlockType.for_time:
        return f"Complete {target} as fast as possible. Log your reps for each round."
    if coerced is BlockType.tabata:
        return "Complete 8 rounds of 20 seconds work, 10 seconds rest. Log reps completed in each work interval."
    return f"Complete {target} of the circuit. Log your performance for each exercise in each round."
