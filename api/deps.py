from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import HTTPException, Request

from api.realtime import BroadcastCueSink, manager
from workout_core.config import Settings
from workout_core.services.cues import CompositeCueSink, LoggingCueSink
from workout_core.services.logging_api import HttpWorkoutLogApi, InMemoryWorkoutLogApi, WorkoutLogApi
from workout_core.services.workout_session import WorkoutSessionOrchestrator

logger = logging.getLogger(__name__)


def build_log_api(settings: Settings) -> WorkoutLogApi:
    """Remote client when a logging API URL is configured, in-memory recorder otherwise."""
    if settings.logging_api_url:
        return HttpWorkoutLogApi.from_settings(settings)
    logger.warning("LOGGING_API_URL not set, exercise logs are kept in memory")
    return InMemoryWorkoutLogApi()


class SessionRegistry:
    """Live workout sessions of this process, keyed by an opaque id."""

    def __init__(self, settings: Settings, api: WorkoutLogApi) -> None:
        self.settings = settings
        self.api = api
        self._sessions: dict[str, WorkoutSessionOrchestrator] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> tuple[str, WorkoutSessionOrchestrator]:
        session_id = uuid4().hex[:12]
        cues = CompositeCueSink(LoggingCueSink(), BroadcastCueSink(manager, channel_for(session_id)))
        orchestrator = WorkoutSessionOrchestrator(self.api, settings=self.settings, cues=cues)
        self._sessions[session_id] = orchestrator
        return session_id, orchestrator

    def get(self, session_id: str) -> WorkoutSessionOrchestrator:
        orchestrator = self._sessions.get(session_id)
        if orchestrator is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return orchestrator

    def remove(self, session_id: str) -> bool:
        orchestrator = self._sessions.pop(session_id, None)
        if orchestrator is None:
            return False
        orchestrator.teardown()
        return True

    def clear(self) -> None:
        for session_id in list(self._sessions):
            self.remove(session_id)


def channel_for(session_id: str) -> str:
    return f"session:{session_id}"


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions
