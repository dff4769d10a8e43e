"""Client side of the workout logging API.

``WorkoutLogApi`` is the collaborator interface the orchestrator talks to.
``HttpWorkoutLogApi`` posts to the remote service with httpx and turns every
transport failure or non-2xx answer into ``TransientIOError``; nothing is
retried here. ``InMemoryWorkoutLogApi`` records calls for local runs and tests.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from workout_core.config import Settings
from workout_core.errors import TransientIOError
from workout_core.logging_config import event_fields
from workout_core.models import DaySummary, Round
from workout_core.validators import BlockDefinition

logger = logging.getLogger(__name__)


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SetPayload(_Payload):
    round_number: int = Field(default=1, ge=1)
    set_number: int = Field(default=1, ge=1)
    weight: float = Field(default=0.0, ge=0)
    reps: int = Field(default=0, ge=0)


class ExerciseLogRequest(_Payload):
    plan_day_exercise_id: int = Field(gt=0)
    sets: list[SetPayload] = Field(default_factory=list)
    duration_completed: int | None = Field(default=None, ge=0)
    is_complete: bool = True
    time_taken: int | None = Field(default=None, ge=0)
    notes: str = ""


class DayCompletionRequest(_Payload):
    total_time_seconds: int = Field(ge=0)
    exercises_completed: int = Field(ge=0)
    blocks_completed: int = Field(ge=0)

    @classmethod
    def from_summary(cls, summary: DaySummary) -> "DayCompletionRequest":
        return cls(
            total_time_seconds=summary.total_time_seconds,
            exercises_completed=summary.exercises_completed,
            blocks_completed=summary.blocks_completed,
        )


def round_log_requests(round_: Round) -> list[ExerciseLogRequest]:
    """One log per entry that has reps or was ticked off; circuits log one set per round."""
    requests = []
    for entry in round_.exercises:
        if entry.actual_reps <= 0 and not entry.completed:
            continue
        requests.append(
            ExerciseLogRequest(
                plan_day_exercise_id=entry.plan_day_exercise_id,
                sets=[
                    SetPayload(
                        round_number=round_.round_number,
                        set_number=1,
                        weight=entry.weight or 0.0,
                        reps=entry.actual_reps,
                    )
                ],
                duration_completed=entry.time_seconds,
                is_complete=entry.completed,
                time_taken=round_.elapsed_seconds,
                notes=entry.notes,
            )
        )
    return requests


class WorkoutLogApi(ABC):
    """Remote persistence for exercise logs, skips and day completion."""

    @abstractmethod
    async def log_exercise_completion(self, request: ExerciseLogRequest) -> None:
        """Create one exercise log."""

    @abstractmethod
    async def mark_exercise_complete(self, workout_id: int, plan_day_exercise_id: int) -> None:
        """Flag a plan-day exercise as done in the workout log."""

    @abstractmethod
    async def skip_exercise(self, workout_id: int, plan_day_exercise_id: int) -> None:
        """Flag a plan-day exercise as skipped."""

    @abstractmethod
    async def mark_day_complete(self, plan_day_id: int, summary: DaySummary) -> None:
        """Close the plan day with its totals."""

    async def log_circuit_round(self, workout_id: int, block_id: int, round_: Round) -> int:
        """Log every non-empty entry of a round and mark each one complete. Returns the count logged."""
        requests = round_log_requests(round_)
        for request in requests:
            await self.log_exercise_completion(request)
            await self.mark_exercise_complete(workout_id, request.plan_day_exercise_id)
        logger.info(
            "Circuit round logged",
            extra=event_fields(block_id=block_id, round_number=round_.round_number, total_reps=round_.total_reps),
        )
        return len(requests)

    async def mark_block_exercises_complete(self, workout_id: int, block: BlockDefinition) -> list[int]:
        """Mark each distinct exercise of the block complete, in block order."""
        marked: list[int] = []
        for exercise in block.exercises:
            if exercise.id in marked:
                continue
            await self.mark_exercise_complete(workout_id, exercise.id)
            marked.append(exercise.id)
        return marked


class HttpWorkoutLogApi(WorkoutLogApi):
    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "HttpWorkoutLogApi":
        return cls(
            settings.logging_api_url,
            token=settings.logging_api_token,
            timeout=settings.logging_api_timeout_sec,
            **kwargs,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, path: str, payload: dict[str, Any] | None = None) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers=self._headers(),
            ) as client:
                resp = await client.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.warning("Logging API request failed: path=%s error=%s", path, e)
            raise TransientIOError(f"Logging API unreachable: {e}", endpoint=path) from e
        if resp.status_code >= 400:
            logger.warning("Logging API rejected request: path=%s status=%d", path, resp.status_code)
            raise TransientIOError(
                f"Logging API returned {resp.status_code}",
                endpoint=path,
                status_code=resp.status_code,
            )
        logger.debug("Logging API call ok: path=%s status=%d", path, resp.status_code)
        return resp

    async def log_exercise_completion(self, request: ExerciseLogRequest) -> None:
        await self._post("/logs/exercise", request.to_json())

    async def mark_exercise_complete(self, workout_id: int, plan_day_exercise_id: int) -> None:
        await self._post(f"/logs/workout/{workout_id}/exercise/{plan_day_exercise_id}")

    async def skip_exercise(self, workout_id: int, plan_day_exercise_id: int) -> None:
        await self._post(f"/logs/workout/{workout_id}/exercise/{plan_day_exercise_id}/skip")

    async def mark_day_complete(self, plan_day_id: int, summary: DaySummary) -> None:
        await self._post(f"/logs/plan-days/{plan_day_id}/complete", DayCompletionRequest.from_summary(summary).to_json())


class InMemoryWorkoutLogApi(WorkoutLogApi):
    """Keeps every call in ``calls``. Operation names listed in ``fail_on`` raise ``TransientIOError``."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_on = set(fail_on or ())

    def _record(self, operation: str, **data: Any) -> None:
        if operation in self.fail_on:
            raise TransientIOError(f"{operation} failed", endpoint=operation)
        self.calls.append((operation, data))

    def calls_for(self, operation: str) -> list[dict[str, Any]]:
        return [data for name, data in self.calls if name == operation]

    async def log_exercise_completion(self, request: ExerciseLogRequest) -> None:
        self._record("log_exercise_completion", **request.to_json())

    async def mark_exercise_complete(self, workout_id: int, plan_day_exercise_id: int) -> None:
        self._record("mark_exercise_complete", workout_id=workout_id, plan_day_exercise_id=plan_day_exercise_id)

    async def skip_exercise(self, workout_id: int, plan_day_exercise_id: int) -> None:
        self._record("skip_exercise", workout_id=workout_id, plan_day_exercise_id=plan_day_exercise_id)

    async def mark_day_complete(self, plan_day_id: int, summary: DaySummary) -> None:
        self._record("mark_day_complete", plan_day_id=plan_day_id, **DayCompletionRequest.from_summary(summary).to_json())
