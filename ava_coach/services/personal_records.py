"""Personal record detection and training volume for strength sessions."""

import logging
from typing import Any, Iterable, Optional, Union

from ..schemas import Exercise, ExerciseRecord, PreviousBest
from ..utils import isoformat_utc

logger = logging.getLogger("ava_coach.personal_records")

LBS_PER_KG = 2.20462
VOLUME_UNIT = "lbs"


def convert_weight(weight: float, from_unit: str, to_unit: str) -> float:
    if from_unit == to_unit:
        return weight
    if from_unit == "kg" and to_unit == "lbs":
        return weight * LBS_PER_KG
    if from_unit == "lbs" and to_unit == "kg":
        return weight / LBS_PER_KG
    raise ValueError(f"Unsupported weight units: {from_unit} -> {to_unit}")


def detect_personal_record(exercise: Exercise, history: Iterable) -> ExerciseRecord:
    """Compare an exercise against past strength sessions.

    ``history`` holds prior sessions (objects with ``exercises`` and
    ``timestamp``), newest first. Names match case-insensitively and past
    weights are converted into the new exercise's unit before comparing.
    A PR needs an earlier best above zero that the new weight strictly beats.
    """
    name = exercise.name.lower()
    previous_best: Optional[PreviousBest] = None
    previous_best_weight = 0.0

    for session in history:
        for past in session.exercises or []:
            if str(past.get("name", "")).lower() != name:
                continue
            past_weight = past.get("weight")
            if not past_weight:
                break
            past_unit = past.get("unit") or "lbs"
            converted = convert_weight(float(past_weight), past_unit, exercise.unit)
            if converted > previous_best_weight:
                previous_best_weight = converted
                previous_best = PreviousBest(
                    weight=past_weight,
                    unit=past_unit,
                    date=isoformat_utc(session.timestamp),
                )
            # first match per session only
            break

    is_pr = previous_best_weight > 0 and exercise.weight > previous_best_weight
    if is_pr:
        logger.info(
            "New PR: %s %s %s (previous best %s %s)",
            exercise.name,
            exercise.weight,
            exercise.unit,
            previous_best.weight,
            previous_best.unit,
        )

    return ExerciseRecord(
        **exercise.model_dump(),
        is_pr=is_pr,
        previous_best=previous_best if is_pr else None,
    )


def check_personal_records(exercises: list[Exercise], history: list) -> list[ExerciseRecord]:
    records = []
    for exercise in exercises:
        try:
            records.append(detect_personal_record(exercise, history))
        except Exception as e:
            logger.error("PR check failed for %s: %s", exercise.name, e)
            records.append(ExerciseRecord(**exercise.model_dump(), is_pr=False))
    return records


def calculate_total_volume(exercises: Iterable[Union[Exercise, dict[str, Any]]]) -> float:
    """Sum of sets x reps x weight, expressed in lbs."""
    total = 0.0
    for exercise in exercises:
        if isinstance(exercise, Exercise):
            exercise = exercise.model_dump()
        weight = convert_weight(
            float(exercise.get("weight") or 0), exercise.get("unit") or "lbs", VOLUME_UNIT
        )
        total += (exercise.get("sets") or 0) * (exercise.get("reps") or 0) * weight
    return round(total, 2)


def summarize_prs(records: Iterable[ExerciseRecord]) -> list[dict[str, Any]]:
    return [
        {
            "exercise": r.name,
            "weight": r.weight,
            "unit": r.unit,
            "previous_best": r.previous_best.model_dump() if r.previous_best else None,
        }
        for r in records
        if r.is_pr
    ]
