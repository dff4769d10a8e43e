"""Announcement cues consumed by speech, sound and push collaborators.

Cues are fire-and-forget: the session never waits on a sink and a failing sink
is logged without breaking the session.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from workout_core.logging_config import event_fields

logger = logging.getLogger(__name__)


class CueEvent(str, Enum):
    workout_started = "workout_started"
    block_started = "block_started"
    round_completed = "round_completed"
    circuit_completed = "circuit_completed"
    rest_started = "rest_started"
    rest_completed = "rest_completed"
    exercise_completed = "exercise_completed"
    workout_completed = "workout_completed"


class CueSink(ABC):
    """Interface every announcement collaborator implements."""

    def configure(self, **options: Any) -> None:
        """Apply user preferences (voice, volume, ...). Optional."""

    def initialize(self) -> None:
        """Acquire audio or network resources. Optional."""

    def cleanup(self) -> None:
        """Release whatever ``initialize`` acquired. Optional."""

    @abstractmethod
    def emit(self, event: CueEvent, payload: dict[str, Any]) -> None:
        """Deliver one cue. Must not block."""


class LoggingCueSink(CueSink):
    def emit(self, event: CueEvent, payload: dict[str, Any]) -> None:
        logger.info("cue %s", event.value, extra=event_fields(cue=event.value, **payload))


class CompositeCueSink(CueSink):
    def __init__(self, *sinks: CueSink) -> None:
        self.sinks = list(sinks)

    def configure(self, **options: Any) -> None:
        for sink in self.sinks:
            sink.configure(**options)

    def initialize(self) -> None:
        for sink in self.sinks:
            sink.initialize()

    def cleanup(self) -> None:
        for sink in self.sinks:
            sink.cleanup()

    def emit(self, event: CueEvent, payload: dict[str, Any]) -> None:
        for sink in self.sinks:
            emit_cue(sink, event, payload)


def emit_cue(sink: CueSink | None, event: CueEvent, payload: dict[str, Any] | None = None) -> None:
    if sink is None:
        return
    try:
        sink.emit(event, payload or {})
    except Exception:
        logger.warning("Cue sink %s failed on %s", type(sink).__name__, event.value, exc_info=True)
