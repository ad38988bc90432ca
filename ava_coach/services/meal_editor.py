import json
import logging
from typing import Any, Optional

from openai import AsyncOpenAI

from ..prompt_manager import PromptManager
from ..schemas import MealUpdateAnalysis
from ..utils import parse_llm_json

logger = logging.getLogger("ava_coach.agent.meal_editor")


class MealEditor:
    """Re-derives a complete meal from a free-text edit request with a second LLM call."""

    def __init__(
        self,
        client: AsyncOpenAI,
        prompt_manager: PromptManager,
        model: str = "gpt-4o",
        temperature: float = 0.3,
    ):
        self.client = client
        self.prompt_manager = prompt_manager
        self.model = model
        self.temperature = temperature

    async def analyze_update(
        self, existing_meal: dict[str, Any], update_request: str
    ) -> Optional[MealUpdateAnalysis]:
        prompt = self.prompt_manager.render(
            "meal_update.j2",
            existing_meal_json=json.dumps(existing_meal, indent=2, ensure_ascii=False),
            update_request=update_request,
        )
        logger.info("Analyzing meal update with %s: %s", self.model, update_request)

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
        )
        content = response.choices[0].message.content
        logger.debug("Raw meal update analysis: %s", content)

        result = parse_llm_json(content, model=MealUpdateAnalysis)
        if not isinstance(result, MealUpdateAnalysis):
            logger.warning("Meal update analysis is not a valid meal object: %s", result)
            return None
        return result
