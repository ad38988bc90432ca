from typing import Any

from ..repositories.activity_repository import STRENGTH_TRAINING
from ..utils import isoformat_utc


def serialize_activity(activity) -> dict[str, Any]:
    data = {
        "id": activity.id,
        "type": activity.type,
        "name": activity.name,
        "timestamp": isoformat_utc(activity.timestamp),
        "duration": activity.duration,
        "notes": activity.notes or "",
    }
    if activity.type == STRENGTH_TRAINING:
        data["exercises"] = activity.exercises or []
        data["total_volume"] = activity.total_volume or 0
    else:
        if activity.distance is not None:
            data["distance"] = activity.distance
            data["distance_unit"] = activity.distance_unit
        if activity.intensity is not None:
            data["intensity"] = activity.intensity
        if activity.calories_burned is not None:
            data["calories_burned"] = activity.calories_burned
    return data
