from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from workout_core.config import Settings
from workout_core.services.cues import CueSink
from workout_core.services.timer import KeepAwakeProvider, TimerEnvironment
from workout_core.validators import BlockDefinition


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 7, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class _Handle:
    def __init__(self, due: datetime, callback, args) -> None:
        self.due = due
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback(*self.args)


class ManualScheduler:
    """Fires callbacks only when the test moves the fake clock forward."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.pending: list[_Handle] = []

    def call_later(self, delay, callback, *args):
        handle = _Handle(self.clock.now + timedelta(seconds=delay), callback, args)
        self.pending.append(handle)
        return handle

    @property
    def active(self) -> list[_Handle]:
        return [h for h in self.pending if not h.cancelled]

    def run_due(self) -> None:
        due = [h for h in self.pending if not h.cancelled and h.due <= self.clock.now]
        self.pending = [h for h in self.pending if h not in due and not h.cancelled]
        for handle in due:
            handle.fire()

    def advance(self, seconds: float, step: float = 1.0) -> None:
        remaining = seconds
        while remaining > 0:
            delta = min(step, remaining)
            self.clock.advance(delta)
            remaining -= delta
            self.run_due()


class RecordingKeepAwake(KeepAwakeProvider):
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.active: set[str] = set()

    def activate(self, tag: str) -> None:
        self.events.append(("on", tag))
        self.active.add(tag)

    def deactivate(self, tag: str) -> None:
        self.events.append(("off", tag))
        self.active.discard(tag)


class RecordingCueSink(CueSink):
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []
        self.initialized = False
        self.cleaned_up = False

    def initialize(self) -> None:
        self.initialized = True

    def cleanup(self) -> None:
        self.cleaned_up = True

    def emit(self, event, payload) -> None:
        self.events.append((event.value, payload))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def keep_awake():
    return RecordingKeepAwake()


@pytest.fixture
def env(clock, scheduler, keep_awake):
    return TimerEnvironment(clock=clock, scheduler=scheduler, keep_awake=keep_awake, tick_seconds=1.0)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def cues():
    return RecordingCueSink()


@pytest.fixture
def make_block():
    def _make(
        block_type="circuit",
        *,
        block_id=10,
        rounds=None,
        time_cap_minutes=None,
        exercises=((101, 10), (102, 15)),
    ) -> BlockDefinition:
        return BlockDefinition(
            id=block_id,
            block_type=block_type,
            block_name=f"{block_type} block",
            rounds=rounds,
            time_cap_minutes=time_cap_minutes,
            exercises=tuple(
                {"id": ex_id, "exerciseId": ex_id + 1000, "name": f"Exercise {ex_id}", "reps": reps, "order": i}
                for i, (ex_id, reps) in enumerate(exercises)
            ),
        )

    return _make
