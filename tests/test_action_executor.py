import asyncio
import datetime
import json

import pytest

from ava_coach.action_executor import ActionExecutor
from ava_coach.config import CoachSettings
from ava_coach.database.models import ActivitySession
from ava_coach.prompt_manager import PromptManager
from ava_coach.repositories.meal_repository import MealRepository
from ava_coach.schemas import MealUpdateAnalysis, UserProfile
from ava_coach.services.meal_editor import MealEditor
from ava_coach.services.meal_identifier import MealIdentifier
from ava_coach.utils import utc_now
from conftest import FakeLLMClient, text_response


def run(executor, action, params, user_id="user-1", context=None):
    return asyncio.run(executor.execute(action, params, user_id=user_id, context=context))


def test_unknown_action(executor):
    result = run(executor, "delete_everything", {})
    assert result == {"success": False, "error": "Unsupported action: delete_everything"}


# ---------------------------------------------------------------- meals


def test_log_meal_computes_totals(executor, breakfast_params):
    result = run(executor, "log_meal", breakfast_params)

    assert result["success"] is True
    data = result["data"]
    assert len(data["meal_id"]) == 32
    assert data["total_calories"] == 220
    assert data["total_protein"] == 15
    assert data["total_fiber"] == 2
    assert data["logged_via"] == "chat"
    assert "220 kcal" in result["message"]


def test_log_meal_rejects_bad_params(executor):
    result = run(executor, "log_meal", {"meal_type": "brunch", "foods": []})
    assert result["success"] is False
    assert result["error"].startswith("Invalid parameters")


def test_log_meal_bad_timestamp_defaults_to_now(executor, breakfast_params):
    before = utc_now()
    result = run(executor, "log_meal", {**breakfast_params, "timestamp": "this morning"})
    assert result["success"] is True
    stored = datetime.datetime.fromisoformat(result["data"]["timestamp"]).replace(tzinfo=None)
    assert stored >= before.replace(microsecond=0)


def test_find_recent_meals_is_scoped_to_user(executor, breakfast_params):
    run(executor, "log_meal", breakfast_params, user_id="alice")
    run(executor, "log_meal", {**breakfast_params, "meal_type": "lunch"}, user_id="bob")

    result = run(executor, "find_recent_meals", {}, user_id="alice")
    meals = result["data"]["meals"]
    assert len(meals) == 1
    assert meals[0]["meal_type"] == "breakfast"


def test_find_recent_meals_filters(executor, breakfast_params):
    run(executor, "log_meal", breakfast_params)
    run(
        executor,
        "log_meal",
        {"meal_type": "dinner", "foods": [{"name": "Pizza slice", "calories": 285}]},
    )

    by_type = run(executor, "find_recent_meals", {"meal_type": "dinner"})
    by_food = run(executor, "find_recent_meals", {"contains_food": "pizza"})
    limited = run(executor, "find_recent_meals", {"limit": 1})

    assert [m["meal_type"] for m in by_type["data"]["meals"]] == ["dinner"]
    assert [m["meal_type"] for m in by_food["data"]["meals"]] == ["dinner"]
    assert len(limited["data"]["meals"]) == 1


def test_find_recent_meals_empty(executor):
    result = run(executor, "find_recent_meals", {})
    assert result["success"] is True
    assert result["data"]["meals"] == []


def test_find_recent_meals_identifies_referenced_meal(db, breakfast_params):
    executor = ActionExecutor(db.get_session)
    first = run(executor, "log_meal", breakfast_params)
    run(executor, "log_meal", {"meal_type": "dinner", "foods": [{"name": "Pizza", "calories": 285}]})
    meal_id = first["data"]["meal_id"]

    client = FakeLLMClient(
        text_response(json.dumps({"mealId": meal_id, "description": "eggs and toast", "confidence": 0.92}))
    )
    executor.set_meal_identifier(MealIdentifier(client, PromptManager()))

    conversation = [{"role": "user", "content": "Actually I only had one egg this morning"}]
    result = run(executor, "find_recent_meals", {}, context={"conversation": conversation})

    identified = result["data"]["identified_meal"]
    assert identified["meal_id"] == meal_id
    assert identified["confidence"] == 0.92
    assert identified["meal"]["meal_type"] == "breakfast"
    assert meal_id in result["message"]


def test_identifier_ignores_unknown_meal_id(db, breakfast_params):
    executor = ActionExecutor(db.get_session)
    run(executor, "log_meal", breakfast_params)
    client = FakeLLMClient(text_response('{"mealId": "not-a-real-meal", "confidence": 0.5}'))
    executor.set_meal_identifier(MealIdentifier(client, PromptManager()))

    result = run(
        executor, "find_recent_meals", {}, context={"conversation": [{"role": "user", "content": "hm"}]}
    )
    assert result["success"] is True
    assert "identified_meal" not in result["data"]


@pytest.mark.parametrize("meal_id", ["xyz789", "abc123", "mealId_placeholder"])
def test_update_meal_rejects_placeholder_ids(executor, meal_id):
    result = run(executor, "analyze_and_update_meal", {"meal_id": meal_id, "update_request": "add a coke"})
    assert result["success"] is False
    assert "find_recent_meals" in result["error"]


def test_update_meal_rejects_short_ids(executor):
    result = run(executor, "analyze_and_update_meal", {"meal_id": "42", "update_request": "add a coke"})
    assert result["success"] is False
    assert result["error"].startswith("Invalid meal id")


def test_update_meal_not_found(db):
    executor = ActionExecutor(db.get_session)
    executor.set_meal_editor(MealEditor(FakeLLMClient(), PromptManager()))
    result = run(
        executor, "analyze_and_update_meal", {"meal_id": "f" * 32, "update_request": "make it lunch"}
    )
    assert result["success"] is False
    assert result["error"].startswith("Meal not found")


def test_update_meal_recomputes_totals(db, breakfast_params):
    executor = ActionExecutor(db.get_session)
    meal_id = run(executor, "log_meal", breakfast_params)["data"]["meal_id"]

    analysis = {
        "mealType": "lunch",
        "foods": [
            {"name": "Eggs", "quantity": "2 eggs", "calories": 140, "protein": 12, "carbs": 1, "fats": 10, "fiber": 0},
            {"name": "Toast", "quantity": "1 slice", "calories": 80, "protein": 3, "carbs": 15, "fats": 1, "fiber": 2},
            {"name": "Coke", "quantity": "1 can", "calories": 140, "protein": 0, "carbs": 39, "fats": 0, "fiber": 0},
        ],
        "notes": "",
        "changesSummary": "Moved to lunch and added a Coke",
        # totals from the model are ignored
        "totalCalories": 9999,
    }
    client = FakeLLMClient(text_response("```json\n" + json.dumps(analysis) + "\n```"))
    executor.set_meal_editor(MealEditor(client, PromptManager()))

    result = run(
        executor,
        "analyze_and_update_meal",
        {"meal_id": meal_id, "update_request": "it was lunch and I had a coke"},
    )

    assert result["success"] is True
    updated = result["data"]["updated_meal"]
    assert updated["meal_type"] == "lunch"
    assert updated["total_calories"] == 360
    assert updated["total_carbs"] == 55
    assert result["data"]["changes_summary"] == "Moved to lunch and added a Coke"

    prompt = client.calls[0]["messages"][0]["content"]
    assert "it was lunch and I had a coke" in prompt
    assert meal_id in prompt

    with db.get_session() as session:
        stored = MealRepository(session).get_meal("user-1", meal_id)
        assert stored.total_calories == 360
        assert stored.updated_at is not None


def test_update_meal_unparseable_analysis(db, breakfast_params):
    executor = ActionExecutor(db.get_session)
    meal_id = run(executor, "log_meal", breakfast_params)["data"]["meal_id"]
    executor.set_meal_editor(MealEditor(FakeLLMClient(text_response("I can't do that")), PromptManager()))

    result = run(executor, "analyze_and_update_meal", {"meal_id": meal_id, "update_request": "??"})
    assert result == {
        "success": False,
        "error": "Failed to analyze the update. Please try rephrasing your request.",
    }


class _RacingEditor:
    """Edits the meal behind the executor's back while 'analyzing'."""

    def __init__(self, db, user_id, meal_id):
        self.db = db
        self.user_id = user_id
        self.meal_id = meal_id

    async def analyze_update(self, existing_meal, update_request):
        with self.db.get_session() as session:
            repo = MealRepository(session)
            meal = repo.get_meal(self.user_id, self.meal_id)
            meal.updated_at = utc_now()
            repo.save(meal)
        return MealUpdateAnalysis(meal_type="snack", foods=[{"name": "Apple", "calories": 95}])


def test_update_meal_detects_concurrent_edit(db, breakfast_params):
    executor = ActionExecutor(db.get_session)
    meal_id = run(executor, "log_meal", breakfast_params)["data"]["meal_id"]
    executor.set_meal_editor(_RacingEditor(db, "user-1", meal_id))

    result = run(executor, "analyze_and_update_meal", {"meal_id": meal_id, "update_request": "snack"})

    assert result["success"] is False
    assert "changed" in result["error"]
    with db.get_session() as session:
        assert MealRepository(session).get_meal("user-1", meal_id).meal_type == "breakfast"


def test_daily_summary_uses_profile_target(executor, breakfast_params):
    run(executor, "log_meal", breakfast_params)
    run(executor, "log_meal", {**breakfast_params, "meal_type": "lunch"})

    default = run(executor, "get_daily_summary", {})
    from_profile = run(
        executor, "get_daily_summary", {}, context={"user_profile": UserProfile(calorie_target=400)}
    )
    explicit = run(executor, "get_daily_summary", {"calorie_target": 880})

    assert default["data"]["total_calories"] == 440
    assert default["data"]["calorie_target"] == 2400
    assert from_profile["data"]["progress"] == 1.0
    assert explicit["data"]["progress"] == 0.5
    assert default["data"]["meals_count"] == 2


def test_daily_summary_other_day_is_empty(executor, breakfast_params):
    run(executor, "log_meal", breakfast_params)
    result = run(executor, "get_daily_summary", {"date": "2001-01-01"})
    assert result["data"]["total_calories"] == 0
    assert result["data"]["meals_count"] == 0


# ----------------------------------------------------------- activities


def _bench(weight, unit="lbs", name="Bench Press"):
    return {"name": name, "sets": 3, "reps": 8, "weight": weight, "unit": unit}


def test_log_cardio_activity(executor):
    result = run(
        executor,
        "log_activity",
        {"type": "cardio", "name": "Running", "duration": 30, "distance": 3.1, "calories_burned": 320},
    )
    data = result["data"]
    assert result["success"] is True
    assert data["distance"] == 3.1
    assert data["distance_unit"] == "miles"
    assert data["calories_burned"] == 320
    assert "exercises" not in data


def test_log_strength_session_detects_pr(executor):
    first = run(executor, "log_activity", {"type": "strength_training", "name": "Chest", "exercises": [_bench(135)]})
    assert "prs_achieved" not in first["data"]
    assert first["data"]["total_volume"] == 3 * 8 * 135

    second = run(
        executor,
        "log_activity",
        {"type": "strength_training", "name": "Chest", "exercises": [_bench(145, name="bench press")]},
    )

    prs = second["data"]["prs_achieved"]
    assert [p["exercise"] for p in prs] == ["bench press"]
    assert prs[0]["previous_best"]["weight"] == 135
    assert second["data"]["exercises"][0]["is_pr"] is True
    assert "PR" in second["message"]


def test_pr_history_ignores_other_users(executor):
    run(executor, "log_activity", {"type": "strength_training", "name": "A", "exercises": [_bench(300)]}, user_id="bob")
    run(executor, "log_activity", {"type": "strength_training", "name": "A", "exercises": [_bench(100)]})
    result = run(executor, "log_activity", {"type": "strength_training", "name": "B", "exercises": [_bench(110)]})
    assert len(result["data"]["prs_achieved"]) == 1


def test_find_recent_activities_window(db, executor):
    recent = run(executor, "log_activity", {"type": "strength_training", "name": "Legs", "exercises": [_bench(100, name="Squat")]})
    run(executor, "log_activity", {"type": "cardio", "name": "Bike"})
    with db.get_session() as session:
        session.add(
            ActivitySession(
                user_id="user-1",
                type="strength_training",
                name="Old",
                timestamp=utc_now() - datetime.timedelta(hours=3),
                exercises=[],
            )
        )
        session.commit()

    within_hour = run(executor, "find_recent_activities", {})
    strength_only = run(executor, "find_recent_activities", {"type": "strength_training"})
    all_day = run(executor, "find_recent_activities", {"within_minutes": 600, "type": "strength_training"})

    assert len(within_hour["data"]["activities"]) == 2
    assert [a["id"] for a in strength_only["data"]["activities"]] == [recent["data"]["activity_id"]]
    assert len(all_day["data"]["activities"]) == 2


def test_update_activity_appends_exercises(executor):
    created = run(
        executor,
        "log_activity",
        {"type": "strength_training", "name": "Chest Workout", "exercises": [_bench(135)], "notes": "felt good"},
    )
    session_id = created["data"]["activity_id"]

    result = run(
        executor,
        "update_activity",
        {
            "session_id": session_id,
            "exercises": [{"name": "Barbell Curl", "sets": 3, "reps": 10, "weight": 20, "unit": "kg"}],
            "name": "Chest & Biceps Workout",
            "notes": "added arms",
        },
    )

    assert result["success"] is True
    assert result["message"] == "Added 1 exercise(s) to session"
    updated = result["data"]["updated_session"]
    assert updated["exercise_count"] == 2
    assert updated["name"] == "Chest & Biceps Workout"
    assert updated["total_volume"] == pytest.approx(3 * 8 * 135 + 3 * 10 * 20 * 2.20462, abs=0.01)

    sessions = run(executor, "find_recent_activities", {})["data"]["activities"]
    assert len(sessions) == 1
    assert sessions[0]["notes"] == "felt good\nadded arms"
    assert [e["name"] for e in sessions[0]["exercises"]] == ["Bench Press", "Barbell Curl"]


def test_update_activity_reports_pr_against_same_session(executor):
    created = run(executor, "log_activity", {"type": "strength_training", "name": "Chest", "exercises": [_bench(135)]})
    result = run(
        executor,
        "update_activity",
        {"session_id": created["data"]["activity_id"], "exercises": [_bench(155)]},
    )
    assert result["data"]["prs_achieved"][0]["weight"] == 155


@pytest.mark.parametrize("session_id", ["abc123", "session_placeholder"])
def test_update_activity_rejects_placeholder_ids(executor, session_id):
    result = run(executor, "update_activity", {"session_id": session_id, "exercises": [_bench(100)]})
    assert result["success"] is False
    assert "find_recent_activities" in result["error"]


def test_update_activity_rejects_short_ids(executor):
    result = run(executor, "update_activity", {"session_id": "9f2c1", "exercises": [_bench(100)]})
    assert result["success"] is False
    assert result["error"].startswith("Invalid session id")


def test_update_activity_extends_grouping_window(executor):
    started = (utc_now() - datetime.timedelta(minutes=50)).isoformat() + "Z"
    created = run(
        executor,
        "log_activity",
        {"type": "strength_training", "name": "Back", "exercises": [_bench(95, name="Row")], "timestamp": started},
    )
    session_id = created["data"]["activity_id"]
    assert run(executor, "find_recent_activities", {"within_minutes": 10})["data"]["activities"] == []

    run(executor, "update_activity", {"session_id": session_id, "exercises": [_bench(40, name="Curl")]})

    recent = run(executor, "find_recent_activities", {"within_minutes": 10})["data"]["activities"]
    assert [a["id"] for a in recent] == [session_id]
    assert [e["name"] for e in recent[0]["exercises"]] == ["Row", "Curl"]


def test_update_activity_only_for_strength(executor):
    cardio = run(executor, "log_activity", {"type": "cardio", "name": "Run"})
    result = run(
        executor,
        "update_activity",
        {"session_id": cardio["data"]["activity_id"], "exercises": [_bench(100)]},
    )
    assert result == {
        "success": False,
        "error": "Can only add exercises to strength training sessions, not cardio",
    }


def test_update_activity_other_users_session_not_found(executor):
    created = run(
        executor, "log_activity", {"type": "strength_training", "name": "A", "exercises": [_bench(100)]}, user_id="bob"
    )
    result = run(executor, "update_activity", {"session_id": created["data"]["activity_id"], "exercises": [_bench(100)]})
    assert result["success"] is False
    assert result["error"].startswith("Session not found")


def test_custom_session_window(db):
    executor = ActionExecutor(db.get_session, CoachSettings(session_window_minutes=1))
    with db.get_session() as session:
        session.add(
            ActivitySession(
                user_id="user-1",
                type="cardio",
                name="Walk",
                timestamp=utc_now() - datetime.timedelta(minutes=5),
            )
        )
        session.commit()
    assert run(executor, "find_recent_activities", {})["data"]["activities"] == []
