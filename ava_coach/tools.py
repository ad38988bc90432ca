_FOOD_ITEM = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Food name"},
        "quantity": {
            "type": "string",
            "description": 'Quantity with unit, e.g. "2 eggs", "1 cup"',
        },
        "calories": {"type": "number", "description": "Calories (kcal)"},
        "protein": {"type": "number", "description": "Protein in grams"},
        "carbs": {"type": "number", "description": "Carbs in grams"},
        "fats": {"type": "number", "description": "Fats in grams"},
        "fiber": {"type": "number", "description": "Fiber in grams"},
    },
    "required": ["name", "quantity", "calories", "protein", "carbs", "fats", "fiber"],
}

_EXERCISE = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Exercise name, e.g. 'Bench Press'"},
        "sets": {"type": "integer", "description": "Number of sets"},
        "reps": {"type": "integer", "description": "Number of reps per set"},
        "weight": {"type": "number", "description": "Weight lifted"},
        "unit": {
            "type": "string",
            "enum": ["lbs", "kg"],
            "description": "Weight unit, defaults to lbs",
        },
    },
    "required": ["name", "sets", "reps", "weight"],
}

TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "log_meal",
            "description": "Log a new meal to the user's food diary. Use when the user has eaten food, only after they confirm the breakdown.",
            "parameters": {
                "type": "object",
                "properties": {
                    "meal_type": {
                        "type": "string",
                        "enum": ["breakfast", "lunch", "dinner", "snack"],
                        "description": "Type of meal",
                    },
                    "foods": {
                        "type": "array",
                        "items": _FOOD_ITEM,
                        "description": "List of foods in the meal",
                    },
                    "timestamp": {
                        "type": "string",
                        "description": "ISO 8601 timestamp of when the meal was eaten, defaults to now",
                    },
                    "notes": {"type": "string", "description": "Optional notes about the meal"},
                    "photo_url": {
                        "type": "string",
                        "description": "URL of an uploaded photo of the meal, if the user sent one",
                    },
                },
                "required": ["meal_type", "foods"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "find_recent_meals",
            "description": "Find the user's recent meals. REQUIRED before analyze_and_update_meal. Returns the real meal ids and the meal the user is most likely referring to.",
            "parameters": {
                "type": "object",
                "properties": {
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of meals to return, default 10",
                        "default": 10,
                    },
                    "meal_type": {
                        "type": "string",
                        "enum": ["breakfast", "lunch", "dinner", "snack"],
                        "description": "Only return meals of this type",
                    },
                    "contains_food": {
                        "type": "string",
                        "description": "Only return meals containing a food whose name includes this text",
                    },
                    "date": {
                        "type": "string",
                        "description": "Only return meals from this day (YYYY-MM-DD)",
                    },
                },
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "analyze_and_update_meal",
            "description": "Update an existing meal from a natural language request. You MUST call find_recent_meals first to get the meal id. NEVER use placeholder ids.",
            "parameters": {
                "type": "object",
                "properties": {
                    "meal_id": {
                        "type": "string",
                        "description": "The meal id returned by find_recent_meals",
                    },
                    "update_request": {
                        "type": "string",
                        "description": 'What the user wants to change, e.g. "change to lunch", "add a Coke", "only half", "no cheese"',
                    },
                },
                "required": ["meal_id", "update_request"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_daily_summary",
            "description": "Get the calorie and macro totals for a day against the user's calorie target",
            "parameters": {
                "type": "object",
                "properties": {
                    "date": {
                        "type": "string",
                        "description": "Day to summarize (YYYY-MM-DD), defaults to today",
                    },
                    "calorie_target": {
                        "type": "number",
                        "description": "Daily calorie target, defaults to the user's profile target or 2400",
                    },
                },
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "log_activity",
            "description": "Log a physical activity: strength training, cardio, sport, class, flexibility or anything else. Use after the user confirms.",
            "parameters": {
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "enum": [
                            "strength_training",
                            "cardio",
                            "sport",
                            "class",
                            "flexibility",
                            "other",
                        ],
                        "description": "Activity category",
                    },
                    "name": {
                        "type": "string",
                        "description": "Activity name, e.g. 'Running', 'Yoga'. For strength training use a session name like 'Chest Workout'.",
                    },
                    "duration": {"type": "number", "description": "Duration in minutes"},
                    "exercises": {
                        "type": "array",
                        "items": _EXERCISE,
                        "description": "Exercises with sets/reps/weight, ONLY for strength_training",
                    },
                    "distance": {"type": "number", "description": "Distance covered"},
                    "distance_unit": {
                        "type": "string",
                        "enum": ["miles", "km"],
                        "description": "Distance unit, defaults to miles",
                    },
                    "intensity": {
                        "type": "string",
                        "enum": ["low", "moderate", "high"],
                        "description": "Activity intensity",
                    },
                    "calories_burned": {
                        "type": "number",
                        "description": "Estimated calories burned, based on the user's body weight",
                    },
                    "timestamp": {
                        "type": "string",
                        "description": "ISO 8601 timestamp, defaults to now",
                    },
                    "notes": {"type": "string", "description": "Optional notes"},
                },
                "required": ["type", "name"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "find_recent_activities",
            "description": "Find recent workout sessions. Use when logging a strength exercise to check whether the user is continuing an existing session. Returns the real session ids.",
            "parameters": {
                "type": "object",
                "properties": {
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of sessions to return, default 5",
                        "default": 5,
                    },
                    "within_minutes": {
                        "type": "number",
                        "description": "Only return sessions from the last N minutes, default 60",
                        "default": 60,
                    },
                    "type": {
                        "type": "string",
                        "description": 'Filter by activity type, e.g. "strength_training"',
                    },
                },
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "update_activity",
            "description": "Add exercises to an existing strength training session. You MUST call find_recent_activities first to get the session id. NEVER use placeholder ids.",
            "parameters": {
                "type": "object",
                "properties": {
                    "session_id": {
                        "type": "string",
                        "description": "The session id returned by find_recent_activities",
                    },
                    "exercises": {
                        "type": "array",
                        "items": _EXERCISE,
                        "description": "New exercises to add to the session",
                    },
                    "name": {
                        "type": "string",
                        "description": 'New session name, e.g. "Chest & Biceps Workout"',
                    },
                    "notes": {"type": "string", "description": "Notes to add to the session"},
                },
                "required": ["session_id", "exercises"],
            },
        },
    },
]

TOOL_NAMES = [tool["function"]["name"] for tool in TOOLS]
