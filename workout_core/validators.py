"""Pydantic validation models for workout definitions handed to the session engine.

Definitions are read-only: the engine copies what it needs into its own
session snapshots and never writes back. Payloads from the workout API use
camelCase keys, so every model accepts both the alias and the field name.
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from workout_core.models import BlockType


class _Definition(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel, extra="ignore")


class ExerciseDefinition(_Definition):
    id: int = Field(gt=0)
    exercise_id: int | None = Field(default=None, gt=0)
    name: str = Field(default="", max_length=200)
    sets: int | None = Field(default=None, ge=0)
    reps: int | None = Field(default=None, ge=0)
    weight: float | None = Field(default=None, ge=0)
    duration: int | None = Field(default=None, ge=0)
    rest_time: int | None = Field(default=None, ge=0)
    order: int = 0

    @property
    def catalog_id(self) -> int:
        """Id of the exercise in the catalog, falling back to the plan-day row id."""
        return self.exercise_id or self.id

    @property
    def is_duration_based(self) -> bool:
        return bool(self.duration and self.duration > 0 and not self.reps)


class BlockDefinition(_Definition):
    id: int = Field(ge=0)
    block_type: BlockType | None = None
    block_name: str = Field(default="", max_length=200)
    rounds: int | None = Field(default=None, ge=1)
    time_cap_minutes: int | None = Field(default=None, ge=1)
    exercises: tuple[ExerciseDefinition, ...] = ()

    @field_validator("block_type", mode="before")
    @classmethod
    def normalize_block_type(cls, v):
        if isinstance(v, str):
            normalized = v.strip().lower().replace("-", "_").replace(" ", "_")
            return normalized or None
        return v


class PlanDayWithBlocks(_Definition):
    id: int = Field(gt=0)
    workout_id: int = Field(gt=0)
    name: str = Field(default="", max_length=200)
    day: date | None = Field(default=None, alias="date")
    is_complete: bool = False
    blocks: tuple[BlockDefinition, ...] = ()

    @model_validator(mode="after")
    def unique_exercise_ids(self):
        seen: set[int] = set()
        for block in self.blocks:
            for exercise in block.exercises:
                if exercise.id in seen:
                    raise ValueError(f"exercise id {exercise.id} appears more than once in the day")
                seen.add(exercise.id)
        return self

    def block_for_exercise(self, exercise_id: int) -> BlockDefinition | None:
        for block in self.blocks:
            if any(ex.id == exercise_id for ex in block.exercises):
                return block
        return None
