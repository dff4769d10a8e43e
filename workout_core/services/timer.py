"""Wall-clock timer primitive shared by circuit blocks, workout and rest timers.

Elapsed time is always recomputed as ``now - started_at - total_paused_seconds``.
Ticks only trigger the recomputation and a notification; they never count, so a
host that was suspended (app in background) reads the right value the moment it
calls ``resynchronize``.

The arithmetic lives in pure reducers over ``TimerState``; ``TimerCoordinator``
adds scheduling, keep-awake handling and stale-callback protection on top.
"""

from __future__ import annotations

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from workout_core.errors import TimerSchedulingError
from workout_core.models import TimerState

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
TickCallback = Callable[[TimerState], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# -- Pure reducers --


def timer_elapsed(state: TimerState, now: datetime) -> int:
    """Whole seconds elapsed at ``now``, excluding paused time."""
    if not state.is_active or state.started_at is None:
        return state.elapsed_seconds
    reference = state.paused_at if state.is_paused and state.paused_at else now
    raw = (reference - state.started_at).total_seconds() - state.total_paused_seconds
    return max(0, int(math.floor(raw)))


def start_timer(state: TimerState, now: datetime, target_seconds: int | None = None) -> TimerState:
    return TimerState(
        is_active=True,
        started_at=now,
        target_seconds=target_seconds if target_seconds is not None else state.target_seconds,
    )


def pause_timer(state: TimerState, now: datetime) -> TimerState:
    if not state.is_running:
        return state
    return replace(state, elapsed_seconds=timer_elapsed(state, now), is_paused=True, paused_at=now)


def resume_timer(state: TimerState, now: datetime) -> TimerState:
    if not (state.is_active and state.is_paused):
        return state
    paused_for = 0.0
    if state.paused_at is not None:
        paused_for = max(0.0, (now - state.paused_at).total_seconds())
    return replace(
        state,
        is_paused=False,
        paused_at=None,
        total_paused_seconds=state.total_paused_seconds + paused_for,
    )


def sync_timer(state: TimerState, now: datetime) -> TimerState:
    if not state.is_running:
        return state
    elapsed = timer_elapsed(state, now)
    if elapsed == state.elapsed_seconds:
        return state
    return replace(state, elapsed_seconds=elapsed)


def stop_timer(state: TimerState, now: datetime | None = None) -> TimerState:
    elapsed = timer_elapsed(state, now) if now is not None and state.is_running else state.elapsed_seconds
    return replace(state, elapsed_seconds=elapsed, is_active=False, is_paused=False, paused_at=None)


def reset_timer(target_seconds: int | None = None) -> TimerState:
    return TimerState(target_seconds=target_seconds)


def clamp_elapsed(state: TimerState, max_seconds: int) -> TimerState:
    if state.elapsed_seconds <= max_seconds:
        return state
    return replace(state, elapsed_seconds=max_seconds)


def format_clock(seconds: int) -> str:
    """Render seconds as ``M:SS``."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


# -- Collaborators --


class KeepAwakeProvider(ABC):
    """Host hook that stops the device from sleeping while a timer runs."""

    @abstractmethod
    def activate(self, tag: str) -> None:
        """Request that the device stays awake for ``tag``."""

    @abstractmethod
    def deactivate(self, tag: str) -> None:
        """Release the request made for ``tag``."""


class NullKeepAwake(KeepAwakeProvider):
    def activate(self, tag: str) -> None:
        logger.debug("keep_awake_activate", extra={"ctx_tag": tag})

    def deactivate(self, tag: str) -> None:
        logger.debug("keep_awake_deactivate", extra={"ctx_tag": tag})


class KeepAwakeGuard:
    """Pairs activate/deactivate calls for one tag; both directions are idempotent."""

    def __init__(self, provider: KeepAwakeProvider, tag: str) -> None:
        self._provider = provider
        self.tag = tag
        self.held = False

    def acquire(self) -> None:
        if self.held:
            return
        self.held = True
        try:
            self._provider.activate(self.tag)
        except Exception as exc:
            logger.warning("Keep-awake activation failed for %s: %s", self.tag, exc)

    def release(self) -> None:
        if not self.held:
            return
        self.held = False
        try:
            self._provider.deactivate(self.tag)
        except Exception as exc:
            logger.warning("Keep-awake release failed for %s: %s", self.tag, exc)


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> TimerHandle: ...


class AsyncioScheduler:
    """Schedules ticks on the running asyncio loop."""

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, callback, *args)


@dataclass
class TimerEnvironment:
    """Clock, scheduler and keep-awake provider shared by every timer of a session."""

    clock: Clock = utc_now
    scheduler: Scheduler = field(default_factory=AsyncioScheduler)
    keep_awake: KeepAwakeProvider = field(default_factory=NullKeepAwake)
    tick_seconds: float = 1.0

    def now(self) -> datetime:
        return self.clock()


# -- Coordinator --


class TimerCoordinator:
    """Countdown/elapsed timer with per-second notifications.

    ``on_tick`` receives the fresh ``TimerState`` every tick and on
    ``resynchronize``. ``on_expire`` fires once when a countdown target is
    reached. ``on_fault`` receives a ``TimerSchedulingError`` raised while
    rescheduling from inside a tick; failures during ``start``/``resume`` are
    raised to the caller directly.
    """

    def __init__(
        self,
        name: str = "timer",
        *,
        env: TimerEnvironment | None = None,
        on_tick: TickCallback | None = None,
        on_expire: TickCallback | None = None,
        on_fault: Callable[[TimerSchedulingError], None] | None = None,
    ) -> None:
        self.name = name
        self._env = env or TimerEnvironment()
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._on_fault = on_fault
        self._state = TimerState()
        self._generation = 0
        self._handle: TimerHandle | None = None
        self._faulted = False
        self._keep_awake = KeepAwakeGuard(self._env.keep_awake, name)

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def faulted(self) -> bool:
        return self._faulted

    @property
    def keeps_awake(self) -> bool:
        return self._keep_awake.held

    @property
    def elapsed_seconds(self) -> int:
        return timer_elapsed(self._state, self._env.now())

    @property
    def remaining_seconds(self) -> int | None:
        if self._state.target_seconds is None:
            return None
        return max(0, self._state.target_seconds - self.elapsed_seconds)

    def start(self, target_seconds: int | None = None) -> TimerState:
        self._cancel_pending()
        self._faulted = False
        self._state = start_timer(self._state, self._env.now(), target_seconds)
        self._run()
        return self._state

    def pause(self) -> TimerState:
        if not self._state.is_running:
            return self._state
        self._cancel_pending()
        self._state = pause_timer(self._state, self._env.now())
        self._keep_awake.release()
        return self._state

    def resume(self) -> TimerState:
        if self._faulted:
            raise TimerSchedulingError(f"{self.name} is faulted; reset it before resuming")
        if not self._state.is_paused:
            return self._state
        self._state = resume_timer(self._state, self._env.now())
        self._run()
        return self._state

    def toggle(self) -> TimerState:
        if not self._state.is_active:
            return self.start()
        if self._state.is_paused:
            return self.resume()
        return self.pause()

    def reset(self, target_seconds: int | None = None) -> TimerState:
        self._cancel_pending()
        self._keep_awake.release()
        self._faulted = False
        self._state = reset_timer(target_seconds if target_seconds is not None else self._state.target_seconds)
        return self._state

    def cancel(self) -> TimerState:
        """Stop ticking and release keep-awake; the elapsed value is kept."""
        self._cancel_pending()
        self._keep_awake.release()
        self._state = stop_timer(self._state, self._env.now())
        return self._state

    def resynchronize(self, now: datetime | None = None) -> TimerState:
        """Recompute from the wall clock, e.g. after the host returns to the foreground."""
        if not self._state.is_running:
            return self._state
        self._state = sync_timer(self._state, now or self._env.now())
        self._notify(self._on_tick)
        if self._expired():
            self._expire()
        return self._state

    # -- internals --

    def _run(self) -> None:
        self._keep_awake.acquire()
        self._schedule()

    def _schedule(self) -> None:
        generation = self._generation
        try:
            self._handle = self._env.scheduler.call_later(self._env.tick_seconds, self._tick, generation)
        except Exception as exc:
            self._fault(exc)
            raise TimerSchedulingError(f"{self.name}: could not schedule the next tick") from exc

    def _cancel_pending(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fault(self, exc: Exception) -> None:
        self._faulted = True
        self._handle = None
        self._keep_awake.release()
        self._state = stop_timer(self._state, self._env.now())
        logger.error("Timer %s faulted: %s", self.name, exc)

    def _expired(self) -> bool:
        target = self._state.target_seconds
        return target is not None and self._state.elapsed_seconds >= target

    def _expire(self) -> None:
        self._cancel_pending()
        self._keep_awake.release()
        self._state = stop_timer(replace(self._state, elapsed_seconds=self._state.target_seconds or 0))
        self._notify(self._on_expire)

    def _notify(self, callback: TickCallback | None) -> None:
        if callback is None:
            return
        try:
            callback(self._state)
        except Exception:
            logger.exception("Timer %s callback failed", self.name)

    def _tick(self, generation: int) -> None:
        if generation != self._generation or not self._state.is_running:
            logger.debug("Ignoring stale tick for %s (generation %s)", self.name, generation)
            return
        self._handle = None
        self._state = sync_timer(self._state, self._env.now())
        self._notify(self._on_tick)
        if generation != self._generation:
            # the owner cancelled or restarted the timer from inside on_tick
            return
        if self._expired():
            self._expire()
            return
        try:
            self._schedule()
        except TimerSchedulingError as exc:
            if self._on_fault is not None:
                self._on_fault(exc)
