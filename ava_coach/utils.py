import datetime
import json
import logging
import re
from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)

logger = logging.getLogger("ava_coach.agent.utils")


def parse_llm_json(
    text: str, model: Optional[type[T]] = None
) -> Union[dict[str, Any], T, None]:
    """Clean up and parse a JSON string returned by the LLM.

    When a pydantic model is given, the data is validated and a model
    instance is returned. If validation fails the raw dict is returned so the
    caller can decide how to fall back.
    """
    if not text or not text.strip():
        logger.warning("LLM returned empty content, cannot parse JSON")
        return None

    try:
        # markdown code fences
        json_match = re.search(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL)
        if json_match:
            json_str = json_match.group(1)
        else:
            json_str = text.strip()

        start_idx = json_str.find("{")
        end_idx = json_str.rfind("}")
        if start_idx != -1 and end_idx != -1:
            json_str = json_str[start_idx : end_idx + 1]

        data = json.loads(json_str)

        if model:
            try:
                return model.model_validate(data)
            except ValidationError as e:
                logger.warning("Pydantic validation failed: %s", e)
                return data
        return data
    except Exception as e:
        logger.error("JSON parsing failed: %s | raw content: %s", e, text[:200])
        return None


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value: Optional[str]) -> datetime.datetime:
    """Parse an ISO 8601 timestamp into naive UTC, falling back to now."""
    if not value:
        return utc_now()
    try:
        parsed = datetime.datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Invalid timestamp %r, using current time", value)
        return utc_now()
    return to_naive_utc(parsed)


def isoformat_utc(value: Optional[datetime.datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.isoformat()
