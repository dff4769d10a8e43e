"""Tests for Pydantic workout definition models."""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from workout_core.models import BlockType
from workout_core.validators import BlockDefinition, ExerciseDefinition, PlanDayWithBlocks


# --- ExerciseDefinition ---

def test_exercise_accepts_camel_case():
    ex = ExerciseDefinition.model_validate({"id": 4, "exerciseId": 204, "restTime": 60, "reps": 10})
    assert ex.exercise_id == 204
    assert ex.rest_time == 60
    assert ex.catalog_id == 204


def test_exercise_catalog_id_falls_back_to_row_id():
    assert ExerciseDefinition(id=9).catalog_id == 9


def test_duration_based_exercise():
    assert ExerciseDefinition(id=1, duration=45).is_duration_based is True
    assert ExerciseDefinition(id=1, duration=45, reps=10).is_duration_based is False
    assert ExerciseDefinition(id=1).is_duration_based is False


def test_exercise_rejects_negative_reps():
    with pytest.raises(ValidationError):
        ExerciseDefinition(id=1, reps=-1)


def test_definitions_are_frozen():
    ex = ExerciseDefinition(id=1, reps=5)
    with pytest.raises(ValidationError):
        ex.reps = 6


# --- BlockDefinition ---

def test_block_type_is_normalized():
    assert BlockDefinition(id=1, block_type="For-Time").block_type is BlockType.for_time
    assert BlockDefinition(id=1, block_type=" AMRAP ").block_type is BlockType.amrap
    assert BlockDefinition(id=1, block_type="").block_type is None


def test_block_rejects_unknown_type():
    with pytest.raises(ValidationError):
        BlockDefinition(id=1, block_type="pyramid")


def test_block_rejects_zero_time_cap():
    with pytest.raises(ValidationError):
        BlockDefinition(id=1, block_type="amrap", time_cap_minutes=0)


# --- PlanDayWithBlocks ---

def test_plan_day_parses_api_payload():
    day = PlanDayWithBlocks.model_validate(
        {
            "id": 7,
            "workoutId": 70,
            "date": "2026-03-02",
            "isComplete": False,
            "blocks": [
                {"id": 1, "blockType": "warmup", "exercises": [{"id": 1}]},
                {"id": 2, "blockType": "emom", "timeCapMinutes": 8, "exercises": [{"id": 2}, {"id": 3}]},
            ],
        }
    )
    assert day.day == date(2026, 3, 2)
    assert day.workout_id == 70
    assert day.block_for_exercise(3).id == 2
    assert day.block_for_exercise(99) is None


def test_plan_day_rejects_duplicate_exercise_ids():
    with pytest.raises(ValidationError):
        PlanDayWithBlocks(
            id=7,
            workout_id=70,
            blocks=[
                BlockDefinition(id=1, exercises=[ExerciseDefinition(id=1)]),
                BlockDefinition(id=2, exercises=[ExerciseDefinition(id=1)]),
            ],
        )
