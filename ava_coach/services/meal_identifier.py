import logging
from typing import Any, Optional

from openai import AsyncOpenAI

from ..prompt_manager import PromptManager
from ..schemas import MealIdentification
from ..utils import parse_llm_json

logger = logging.getLogger("ava_coach.agent.meal_identifier")

CONVERSATION_WINDOW = 6


class MealIdentifier:
    """Second LLM pass that picks the meal a user is referring to out of their recent meals."""

    def __init__(
        self,
        client: AsyncOpenAI,
        prompt_manager: PromptManager,
        model: str = "gpt-4o-mini",
    ):
        self.client = client
        self.prompt_manager = prompt_manager
        self.model = model

    async def identify(
        self, meals: list[dict[str, Any]], conversation: list[dict[str, Any]]
    ) -> Optional[MealIdentification]:
        if not meals:
            return None

        prompt = self.prompt_manager.render(
            "meal_identifier.j2",
            meals=meals,
            conversation=conversation[-CONVERSATION_WINDOW:],
        )

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You only output JSON."},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.1,
            )
        except Exception as e:
            logger.error("Meal identification request failed: %s", e)
            return None

        result = parse_llm_json(response.choices[0].message.content, model=MealIdentification)
        if not isinstance(result, MealIdentification) or not result.meal_id:
            logger.info("No meal identified from %d candidates", len(meals))
            return None

        if result.meal_id not in {m["id"] for m in meals}:
            logger.warning("Identified meal id %s is not among the candidates", result.meal_id)
            return None

        logger.info("Identified meal %s (confidence %.2f)", result.meal_id, result.confidence)
        return result
