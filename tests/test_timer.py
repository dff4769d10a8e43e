"""Tests for the wall-clock timer reducers and TimerCoordinator."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from workout_core.errors import TimerSchedulingError
from workout_core.models import TimerState
from workout_core.services.timer import (
    TimerCoordinator,
    TimerEnvironment,
    clamp_elapsed,
    format_clock,
    pause_timer,
    resume_timer,
    start_timer,
    timer_elapsed,
)

T0 = datetime(2026, 3, 2, 7, 0, 0, tzinfo=timezone.utc)


class _FailingScheduler:
    def __init__(self, fail_after: int = 0) -> None:
        self.calls = 0
        self.fail_after = fail_after
        self.handles = []

    def call_later(self, delay, callback, *args):
        self.calls += 1
        if self.calls > self.fail_after:
            raise RuntimeError("no running event loop")
        handle = _StubHandle(callback, args)
        self.handles.append(handle)
        return handle


class _StubHandle:
    def __init__(self, callback, args) -> None:
        self.callback = callback
        self.args = args

    def cancel(self) -> None:
        pass


# --- reducers ---

def test_elapsed_excludes_paused_time():
    state = TimerState(is_active=True, started_at=T0, total_paused_seconds=30.0)
    assert timer_elapsed(state, T0 + timedelta(seconds=100)) == 70


def test_elapsed_never_negative_when_clock_goes_backwards():
    state = start_timer(TimerState(), T0)
    assert timer_elapsed(state, T0 - timedelta(seconds=5)) == 0


def test_elapsed_is_frozen_while_paused():
    state = pause_timer(start_timer(TimerState(), T0), T0 + timedelta(seconds=42))
    assert timer_elapsed(state, T0 + timedelta(hours=2)) == 42


def test_resume_adds_pause_duration():
    paused = pause_timer(start_timer(TimerState(), T0), T0 + timedelta(seconds=10))
    resumed = resume_timer(paused, T0 + timedelta(seconds=70))
    assert resumed.is_paused is False
    assert resumed.paused_at is None
    assert resumed.total_paused_seconds == 60.0
    assert timer_elapsed(resumed, T0 + timedelta(seconds=75)) == 15


def test_resume_on_running_timer_is_noop():
    running = start_timer(TimerState(), T0)
    assert resume_timer(running, T0 + timedelta(seconds=5)) is running


def test_clamp_elapsed():
    assert clamp_elapsed(TimerState(elapsed_seconds=610), 600).elapsed_seconds == 600
    state = TimerState(elapsed_seconds=12)
    assert clamp_elapsed(state, 600) is state


def test_format_clock():
    assert format_clock(0) == "0:00"
    assert format_clock(65) == "1:05"
    assert format_clock(-3) == "0:00"


# --- coordinator ---

def test_ticks_notify_with_wall_clock_elapsed(env, scheduler):
    seen = []
    timer = TimerCoordinator("t", env=env, on_tick=seen.append)
    timer.start()
    scheduler.advance(3)
    assert [s.elapsed_seconds for s in seen] == [1, 2, 3]


def test_resynchronize_catches_up_after_suspension(env, clock):
    seen = []
    timer = TimerCoordinator("t", env=env, on_tick=seen.append)
    timer.start()
    clock.advance(125)  # no ticks delivered while backgrounded
    state = timer.resynchronize()
    assert state.elapsed_seconds == 125
    assert seen[-1].elapsed_seconds == 125


def test_pause_then_resume_continues_from_paused_value(env, clock, scheduler):
    timer = TimerCoordinator("t", env=env)
    timer.start()
    scheduler.advance(5)
    timer.pause()
    clock.advance(300)
    timer.resume()
    scheduler.advance(3)
    assert timer.state.elapsed_seconds == 8
    assert timer.state.total_paused_seconds == 300.0


def test_stale_tick_after_cancel_is_ignored(env, scheduler):
    seen = []
    timer = TimerCoordinator("t", env=env, on_tick=seen.append)
    timer.start()
    stale = scheduler.active[0]
    timer.cancel()
    stale.fire()
    assert seen == []
    assert timer.state.is_active is False


def test_restart_invalidates_previous_generation(env, scheduler):
    seen = []
    timer = TimerCoordinator("t", env=env, on_tick=seen.append)
    timer.start()
    old = scheduler.active[0]
    timer.start()
    old.fire()
    assert seen == []
    assert timer.generation == 2


def test_keep_awake_follows_running_state(env, keep_awake):
    timer = TimerCoordinator("workout", env=env)
    timer.start()
    assert keep_awake.active == {"workout"}
    timer.pause()
    assert keep_awake.active == set()
    timer.resume()
    assert keep_awake.active == {"workout"}
    timer.cancel()
    timer.cancel()
    assert keep_awake.events == [("on", "workout"), ("off", "workout"), ("on", "workout"), ("off", "workout")]


def test_countdown_expires_once(env, scheduler, keep_awake):
    expired = []
    timer = TimerCoordinator("rest", env=env, on_expire=expired.append)
    timer.start(target_seconds=3)
    scheduler.advance(6)
    assert len(expired) == 1
    assert timer.state.elapsed_seconds == 3
    assert timer.state.is_active is False
    assert timer.remaining_seconds == 0
    assert keep_awake.active == set()
    assert scheduler.active == []


def test_toggle_starts_pauses_and_resumes(env):
    timer = TimerCoordinator("t", env=env)
    assert timer.toggle().is_running is True
    assert timer.toggle().is_paused is True
    assert timer.toggle().is_running is True


def test_scheduling_failure_faults_the_timer(clock, keep_awake):
    env = TimerEnvironment(clock=clock, scheduler=_FailingScheduler(), keep_awake=keep_awake)
    timer = TimerCoordinator("t", env=env)
    with pytest.raises(TimerSchedulingError):
        timer.start()
    assert timer.faulted is True
    assert timer.keeps_awake is False
    assert keep_awake.active == set()
    with pytest.raises(TimerSchedulingError):
        timer.resume()
    timer.reset()
    assert timer.faulted is False


def test_scheduling_failure_inside_tick_reports_through_on_fault(clock, keep_awake):
    scheduler = _FailingScheduler(fail_after=1)
    faults = []
    env = TimerEnvironment(clock=clock, scheduler=scheduler, keep_awake=keep_awake)
    timer = TimerCoordinator("t", env=env, on_fault=faults.append)
    timer.start()
    clock.advance(1)
    handle = scheduler.handles[0]
    handle.callback(*handle.args)
    assert len(faults) == 1
    assert isinstance(faults[0], TimerSchedulingError)
    assert timer.faulted is True
    assert keep_awake.active == set()


def test_failing_tick_listener_does_not_stop_the_timer(env, scheduler):
    def boom(state):
        raise ValueError("listener bug")

    timer = TimerCoordinator("t", env=env, on_tick=boom)
    timer.start()
    scheduler.advance(2)
    assert timer.state.elapsed_seconds == 2
    assert len(scheduler.active) == 1
