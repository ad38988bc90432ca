"""Agent action executor.

Runs the tool calls requested by the LLM against the meal and activity store.
"""

import datetime
import inspect
import logging
from typing import Any, Optional

from pydantic import ValidationError

from .config import CoachSettings
from .database.models import ActivitySession, Meal
from .repositories.activity_repository import STRENGTH_TRAINING, ActivityRepository
from .repositories.meal_repository import MealRepository
from .schemas import (
    MEAL_TYPES,
    LogActivityParams,
    LogMealParams,
    UpdateActivityParams,
)
from .services.activities import serialize_activity
from .services.nutrition import apply_totals, build_daily_summary, serialize_meal
from .services.personal_records import (
    calculate_total_volume,
    check_personal_records,
    summarize_prs,
)
from .utils import parse_timestamp, utc_now

logger = logging.getLogger("ava_coach.agent.action")

MEAL_ID_PLACEHOLDERS = {
    "xyz789",
    "abc123",
    "12345",
    "mealId_placeholder",
    "meal_id_placeholder",
    "meal_placeholder",
}
SESSION_ID_PLACEHOLDERS = {
    "xyz789",
    "abc123",
    "12345",
    "sessionId_placeholder",
    "session_id_placeholder",
    "session_placeholder",
}
MIN_DOCUMENT_ID_LENGTH = 10
MAX_QUERY_LIMIT = 50


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return "Invalid parameters - " + "; ".join(parts)


def _clamp_limit(value: Any, default: int) -> int:
    try:
        limit = int(value) if value is not None else default
    except (TypeError, ValueError):
        limit = default
    return max(1, min(limit, MAX_QUERY_LIMIT))


def _parse_day(value: Optional[str]) -> datetime.date:
    if not value:
        return utc_now().date()
    return datetime.date.fromisoformat(str(value).strip()[:10])


class ActionExecutor:
    """Executes the tool calls emitted by the agent."""

    def __init__(self, session_factory, settings: Optional[CoachSettings] = None):
        """
        Args:
            session_factory: callable returning a SQLAlchemy Session
            settings: coaching constants (calorie target, grouping window, PR history)
        """
        self._session_factory = session_factory
        self._settings = settings or CoachSettings()
        self._meal_editor = None
        self._meal_identifier = None

    async def execute(
        self,
        action_name: str,
        params: dict[str, Any],
        user_id: str = "anonymous",
        context: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Run the named action for one user and return its result."""
        handler = getattr(self, f"_action_{action_name}", None)
        if not handler:
            return {"success": False, "error": f"Unsupported action: {action_name}"}

        context = context or {}
        try:
            if inspect.iscoroutinefunction(handler):
                return await handler(params or {}, user_id, context)
            return handler(params or {}, user_id, context)
        except ValidationError as e:
            logger.warning("Invalid parameters for [%s]: %s", action_name, e)
            return {"success": False, "error": _format_validation_error(e)}
        except Exception as e:
            logger.error("Action failed [%s]: %s", action_name, e)
            return {"success": False, "error": str(e)}

    # ------------------------------------------------------------------
    # Meals
    # ------------------------------------------------------------------

    def _action_log_meal(self, params, user_id, context) -> dict[str, Any]:
        """Log a new meal; totals are derived from the food items."""
        data = LogMealParams.model_validate(params)
        foods = [food.model_dump() for food in data.foods]

        with self._session_factory() as session:
            repo = MealRepository(session)
            meal = Meal(
                user_id=user_id,
                meal_type=data.meal_type,
                timestamp=parse_timestamp(data.timestamp),
                notes=data.notes or "",
                photo_url=data.photo_url,
                photo_urls=[data.photo_url] if data.photo_url else [],
                logged_via="chat",
            )
            apply_totals(meal, foods)
            meal = repo.create_meal(meal)

        logger.info(
            "Meal logged: %s (user %s, %s, %s kcal)",
            meal.id,
            user_id,
            meal.meal_type,
            meal.total_calories,
        )
        return {
            "success": True,
            "data": {"meal_id": meal.id, **serialize_meal(meal)},
            "message": f"Meal logged successfully: {meal.meal_type}, {meal.total_calories:g} kcal",
        }

    async def _action_find_recent_meals(self, params, user_id, context) -> dict[str, Any]:
        """Recent meals, plus the one the user most likely means."""
        limit = _clamp_limit(params.get("limit"), 10)
        meal_type = params.get("meal_type")
        if meal_type and meal_type not in MEAL_TYPES:
            return {"success": False, "error": f"Invalid meal_type: {meal_type}"}
        day = _parse_day(params["date"]) if params.get("date") else None

        with self._session_factory() as session:
            repo = MealRepository(session)
            meals = repo.find_recent_meals(
                user_id,
                limit=limit,
                meal_type=meal_type,
                day=day,
                contains_food=params.get("contains_food"),
            )
            data = [serialize_meal(m) for m in meals]

        logger.info("Found %d recent meals (user %s)", len(data), user_id)
        if not data:
            return {
                "success": True,
                "data": {"meals": []},
                "message": "No logged meals found for this user",
            }

        result = {
            "success": True,
            "data": {"meals": data},
            "message": f"Found {len(data)} recent meals",
        }

        conversation = context.get("conversation")
        if self._meal_identifier and conversation:
            identified = await self._meal_identifier.identify(data, conversation)
            if identified:
                meal = next(m for m in data if m["id"] == identified.meal_id)
                result["data"]["identified_meal"] = {
                    "meal_id": identified.meal_id,
                    "description": identified.description,
                    "confidence": identified.confidence,
                    "meal": meal,
                }
                result["message"] = (
                    f"Identified the meal the user means: {identified.description} "
                    f"(meal_id {identified.meal_id}). Confirm the change with the user, "
                    "then call analyze_and_update_meal with this meal_id."
                )
        return result

    async def _action_analyze_and_update_meal(self, params, user_id, context) -> dict[str, Any]:
        """Re-derive a meal from a natural language edit and save it."""
        meal_id = str(params.get("meal_id") or "").strip()
        update_request = str(params.get("update_request") or "").strip()

        if not meal_id:
            return {"success": False, "error": "Missing meal_id parameter"}
        if meal_id in MEAL_ID_PLACEHOLDERS:
            logger.error("Rejected placeholder meal id: %s", meal_id)
            return {
                "success": False,
                "error": "You must call find_recent_meals first to get the real meal id. "
                f'Never use placeholder ids like "{meal_id}".',
            }
        if len(meal_id) < MIN_DOCUMENT_ID_LENGTH:
            logger.error("Rejected meal id that is too short: %s", meal_id)
            return {
                "success": False,
                "error": "Invalid meal id. You must call find_recent_meals first to get the real meal id.",
            }
        if not update_request:
            return {"success": False, "error": "Missing update_request parameter"}
        if not self._meal_editor:
            return {"success": False, "error": "Meal update service is unavailable"}

        with self._session_factory() as session:
            meal = MealRepository(session).get_meal(user_id, meal_id)
            if not meal:
                return {
                    "success": False,
                    "error": "Meal not found. It may have been deleted or the id is incorrect.",
                }
            existing = serialize_meal(meal)
            version = meal.updated_at

        analysis = await self._meal_editor.analyze_update(existing, update_request)
        if analysis is None:
            return {
                "success": False,
                "error": "Failed to analyze the update. Please try rephrasing your request.",
            }

        foods = [food.model_dump() for food in analysis.foods]
        with self._session_factory() as session:
            repo = MealRepository(session)
            meal = repo.get_meal(user_id, meal_id, for_update=True)
            if not meal:
                return {"success": False, "error": "Meal not found. It may have been deleted."}
            if meal.updated_at != version:
                logger.warning("Meal %s changed during update analysis", meal_id)
                return {
                    "success": False,
                    "error": "The meal was changed while the update was being analyzed. Please try again.",
                }
            meal.meal_type = analysis.meal_type
            meal.notes = analysis.notes
            apply_totals(meal, foods)
            meal.updated_at = utc_now()
            meal = repo.save(meal)

        logger.info("Meal updated: %s (%s)", meal_id, analysis.changes_summary)
        return {
            "success": True,
            "data": {
                "meal_id": meal_id,
                "changes_summary": analysis.changes_summary or "Your meal has been updated.",
                "updated_meal": serialize_meal(meal),
            },
            "message": "Meal updated successfully",
        }

    def _action_get_daily_summary(self, params, user_id, context) -> dict[str, Any]:
        day = _parse_day(params.get("date"))
        calorie_target = params.get("calorie_target")
        if calorie_target is None:
            profile = context.get("user_profile")
            calorie_target = getattr(profile, "calorie_target", None) or self._settings.default_calorie_target
        calorie_target = float(calorie_target)
        if calorie_target <= 0:
            return {"success": False, "error": "calorie_target must be positive"}

        with self._session_factory() as session:
            meals = MealRepository(session).get_meals_for_day(user_id, day)
            summary = build_daily_summary(day, meals, calorie_target)

        return {
            "success": True,
            "data": summary,
            "message": f"{summary['total_calories']:g} / {calorie_target:g} calories on {summary['date']}",
        }

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    def _action_log_activity(self, params, user_id, context) -> dict[str, Any]:
        """Log any activity; strength sessions get PR detection and volume."""
        data = LogActivityParams.model_validate(params)
        prs: list[dict[str, Any]] = []

        with self._session_factory() as session:
            repo = ActivityRepository(session)
            activity = ActivitySession(
                user_id=user_id,
                type=data.type,
                name=data.name,
                timestamp=parse_timestamp(data.timestamp),
                notes=data.notes or "",
                logged_via="chat",
            )

            if data.exercises:
                history = repo.get_strength_history(user_id, limit=self._settings.pr_history_limit)
                records = check_personal_records(data.exercises, history)
                activity.exercises = [r.model_dump() for r in records]
                activity.total_volume = calculate_total_volume(records)
                prs = summarize_prs(records)

            if data.duration is not None:
                activity.duration = data.duration
            if data.distance is not None:
                activity.distance = data.distance
                activity.distance_unit = data.distance_unit or "miles"
            if data.intensity is not None:
                activity.intensity = data.intensity
            if data.calories_burned is not None:
                activity.calories_burned = data.calories_burned

            activity = repo.create_session(activity)

        logger.info("Activity logged: %s (user %s, %s)", activity.id, user_id, activity.type)
        result_data = {"activity_id": activity.id, **serialize_activity(activity)}
        message = "Activity logged successfully"
        if prs:
            result_data["prs_achieved"] = prs
            message += f" - {len(prs)} new PR(s): " + ", ".join(p["exercise"] for p in prs)
        return {"success": True, "data": result_data, "message": message}

    def _action_find_recent_activities(self, params, user_id, context) -> dict[str, Any]:
        limit = _clamp_limit(params.get("limit"), 5)
        within_minutes = params.get("within_minutes")
        if within_minutes is None:
            within_minutes = self._settings.session_window_minutes
        within_minutes = float(within_minutes)
        since = utc_now() - datetime.timedelta(minutes=within_minutes) if within_minutes > 0 else None

        with self._session_factory() as session:
            sessions = ActivityRepository(session).find_recent_sessions(
                user_id, limit=limit, since=since, activity_type=params.get("type")
            )
            data = [serialize_activity(s) for s in sessions]

        logger.info(
            "Found %d activities within %s minutes (user %s)", len(data), within_minutes, user_id
        )
        return {
            "success": True,
            "data": {"activities": data},
            "message": f"Found {len(data)} activities in the last {within_minutes:g} minutes"
            if data
            else f"No activities in the last {within_minutes:g} minutes",
        }

    def _action_update_activity(self, params, user_id, context) -> dict[str, Any]:
        """Append exercises to an existing strength session (session grouping)."""
        session_id = str(params.get("session_id") or "").strip()
        if not session_id:
            return {"success": False, "error": "Missing session_id parameter"}
        if session_id in SESSION_ID_PLACEHOLDERS:
            logger.error("Rejected placeholder session id: %s", session_id)
            return {
                "success": False,
                "error": "You must call find_recent_activities first to get the real session id. "
                f'Never use placeholder ids like "{session_id}".',
            }
        if len(session_id) < MIN_DOCUMENT_ID_LENGTH:
            logger.error("Rejected session id that is too short: %s", session_id)
            return {
                "success": False,
                "error": "Invalid session id. Call find_recent_activities to get the real id.",
            }

        data = UpdateActivityParams.model_validate({**params, "session_id": session_id})

        with self._session_factory() as session:
            repo = ActivityRepository(session)
            activity = repo.get_session(user_id, session_id, for_update=True)
            if not activity:
                return {
                    "success": False,
                    "error": "Session not found. It may have been deleted or the id is incorrect.",
                }
            if activity.type != STRENGTH_TRAINING:
                return {
                    "success": False,
                    "error": f"Can only add exercises to strength training sessions, not {activity.type}",
                }

            history = repo.get_strength_history(user_id, limit=self._settings.pr_history_limit)
            records = check_personal_records(data.exercises, history)
            all_exercises = list(activity.exercises or []) + [r.model_dump() for r in records]

            activity.exercises = all_exercises
            activity.total_volume = calculate_total_volume(all_exercises)
            # keeps the session inside the grouping window
            activity.timestamp = utc_now()
            activity.updated_at = activity.timestamp
            if data.name is not None:
                activity.name = data.name
            if data.notes is not None:
                activity.notes = f"{activity.notes}\n{data.notes}" if activity.notes else data.notes
            activity = repo.save(activity)

        prs = summarize_prs(records)
        logger.info(
            "Session %s updated: +%d exercises, volume %s", session_id, len(records), activity.total_volume
        )
        result_data = {
            "session_id": session_id,
            "updated_session": {
                "id": session_id,
                "name": activity.name,
                "type": STRENGTH_TRAINING,
                "exercise_count": len(all_exercises),
                "total_volume": activity.total_volume,
            },
        }
        if prs:
            result_data["prs_achieved"] = prs
        return {
            "success": True,
            "data": result_data,
            "message": f"Added {len(records)} exercise(s) to session",
        }

    def set_meal_editor(self, meal_editor) -> None:
        """Inject the meal update analysis service."""
        self._meal_editor = meal_editor

    def set_meal_identifier(self, meal_identifier) -> None:
        """Inject the meal identification service."""
        self._meal_identifier = meal_identifier
