import json
import logging
import re
from collections.abc import AsyncGenerator
from typing import Any, Optional

from openai import AsyncOpenAI

from .action_executor import ActionExecutor
from .config import CoachSettings, Settings
from .llm.factory import LLMFactory
from .prompt_manager import PromptManager
from .schemas import ChatResult, TokenUsage, UserProfile
from .services.meal_editor import MealEditor
from .services.meal_identifier import MealIdentifier
from .tools import TOOLS
from .utils import isoformat_utc, utc_now

logger = logging.getLogger("ava_coach.agent")

MEMORY_RECENT_MESSAGES = 20
MEMORY_RECENT_CHAR_BUDGET = 8000
MEMORY_MAX_FACT_ITEMS = 30
MEMORY_MAX_FACT_CHARS = 1400
MEMORY_MAX_TIMELINE_ITEMS = 20
MEMORY_MAX_TIMELINE_CHARS = 1800

FACT_KEYWORDS = {
    "Goals": ["goal", "lose", "gain", "target", "weigh", "lbs", "kg", "bulk", "cut"],
    "Food preferences": ["love", "like", "prefer", "favorite", "usually eat"],
    "Dietary restrictions": ["allergic", "allergy", "vegan", "vegetarian", "don't eat", "can't eat", "intolerant", "gluten"],
    "Training": ["gym", "workout", "train", "run", "lift", "sleep", "schedule", "every day", "per week"],
    "Health notes": ["injury", "injured", "pain", "doctor", "diabetes", "blood pressure", "medication"],
}


class CoachAgent:
    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://api.openai.com/v1",
        provider: str = "openai",
        model: str = "gpt-4o-mini",
        analysis_model: str = "gpt-4o",
        temperature: float = 0.7,
        coach_settings: Optional[CoachSettings] = None,
        # callable returning a SQLAlchemy Session
        session_factory=None,
        client: Optional[AsyncOpenAI] = None,
    ):
        if client is None:
            LLMFactory.configure(api_key=api_key, base_url=base_url)
            client = LLMFactory.create_async_client(provider)

        self.client = client
        self.model = model
        self.temperature = temperature
        self.coach_settings = coach_settings or CoachSettings()
        self.prompt_manager = PromptManager()

        self.meal_editor = MealEditor(self.client, self.prompt_manager, model=analysis_model)
        self.meal_identifier = MealIdentifier(self.client, self.prompt_manager, model=self.model)

        self._action_executor: Optional[ActionExecutor] = None
        if session_factory:
            self._action_executor = ActionExecutor(session_factory, self.coach_settings)
            self._action_executor.set_meal_editor(self.meal_editor)
            self._action_executor.set_meal_identifier(self.meal_identifier)

    @classmethod
    def from_settings(cls, settings: Settings, session_factory=None) -> "CoachAgent":
        settings.validate_llm()
        return cls(
            api_key=settings.llm.api_key,
            base_url=settings.llm.base_url,
            provider=settings.llm.provider,
            model=settings.llm.model,
            analysis_model=settings.llm.analysis_model,
            temperature=settings.llm.temperature,
            coach_settings=settings.coach,
            session_factory=session_factory,
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _truncate_text(self, text: str, limit: int) -> str:
        if len(text) <= limit:
            return text
        return f"{text[: limit - 1]}…"

    def _content_to_text(self, content: Any) -> str:
        if isinstance(content, list):
            # multi-part content from the app; keep the text parts
            return " ".join(
                str(part.get("text", "")) for part in content if isinstance(part, dict)
            ).strip()
        return str(content or "").strip()

    def _normalize_history(self, history: list[dict]) -> list[dict]:
        normalized: list[dict] = []
        for item in history:
            role = str(item.get("role", "")).strip()
            content = self._content_to_text(item.get("content"))
            if role not in {"user", "assistant"}:
                continue
            if not content:
                continue
            normalized.append({"role": role, "content": content})
        return normalized

    def _extract_memory_facts(self, history: list[dict]) -> str:
        categories: dict[str, list[str]] = {title: [] for title in FACT_KEYWORDS}

        for msg in history:
            if msg["role"] != "user":
                continue
            for raw in re.split(r"[.!?\n]", msg["content"]):
                sentence = raw.strip()
                if len(sentence) < 3:
                    continue
                lowered = sentence.lower()
                for title, keywords in FACT_KEYWORDS.items():
                    if any(k in lowered for k in keywords):
                        fact = self._truncate_text(sentence, 80)
                        if fact not in categories[title]:
                            categories[title].append(fact)

        lines: list[str] = []
        item_count = 0
        for title, facts in categories.items():
            if not facts or item_count >= MEMORY_MAX_FACT_ITEMS:
                continue
            lines.append(f"- {title}:")
            for fact in facts[: MEMORY_MAX_FACT_ITEMS - item_count]:
                lines.append(f"  - {fact}")
                item_count += 1

        return self._truncate_text("\n".join(lines), MEMORY_MAX_FACT_CHARS)

    def _build_timeline_digest(self, older_history: list[dict]) -> str:
        lines: list[str] = []
        for msg in older_history[-MEMORY_MAX_TIMELINE_ITEMS:]:
            role = "User" if msg["role"] == "user" else "Ava"
            text = self._truncate_text(msg["content"].replace("\n", " ").strip(), 60)
            lines.append(f"- {role}: {text}")
        return self._truncate_text("\n".join(lines), MEMORY_MAX_TIMELINE_CHARS)

    def _compress_memory(self, history: list[dict]) -> tuple[str, list[dict]]:
        """Split history into a memory digest of older turns and the recent turns sent verbatim."""
        normalized = self._normalize_history(history)
        if not normalized:
            return "", []

        recent = normalized[-MEMORY_RECENT_MESSAGES:]
        while (
            sum(len(m["content"]) for m in recent) > MEMORY_RECENT_CHAR_BUDGET
            and len(recent) > 2
        ):
            recent.pop(0)

        older = normalized[: -len(recent)] if len(normalized) > len(recent) else []
        if not older:
            return "", recent

        sections: list[str] = []
        facts = self._extract_memory_facts(older)
        if facts:
            sections.append("### Long-term facts\n" + facts)
        timeline = self._build_timeline_digest(older)
        if timeline:
            sections.append("### Earlier conversation (compressed)\n" + timeline)

        return "\n\n".join(sections), recent

    def _format_user_info(self, profile: Optional[UserProfile]) -> str:
        if profile is None:
            return ""
        parts = []
        if profile.name:
            parts.append(f"Name: {profile.name}")
        if profile.weight:
            parts.append(f"Body weight: {profile.weight:g} {profile.weight_unit}")
        if profile.height_cm:
            parts.append(f"Height: {profile.height_cm:g} cm")
        if profile.age:
            parts.append(f"Age: {profile.age}")
        if profile.gender:
            parts.append(f"Gender: {profile.gender}")
        if profile.goal:
            parts.append(f"Goal: {profile.goal}")
        return "\n".join(parts)

    def _build_messages(
        self,
        messages: list[dict],
        user_profile: Optional[UserProfile],
        image_url: Optional[str],
    ) -> tuple[list[dict], list[dict]]:
        memory_context, recent = self._compress_memory(messages)
        calorie_target = (
            user_profile.calorie_target if user_profile and user_profile.calorie_target else None
        ) or self.coach_settings.default_calorie_target

        system_prompt = self.prompt_manager.render(
            "chat_agent.j2",
            now=isoformat_utc(utc_now()),
            user_info=self._format_user_info(user_profile),
            calorie_target=calorie_target,
            memory_context=memory_context,
            session_window_minutes=self.coach_settings.session_window_minutes,
        )

        llm_messages: list[dict] = [{"role": "system", "content": system_prompt}]
        llm_messages.extend(dict(m) for m in recent)

        if image_url and llm_messages[-1]["role"] == "user":
            last = llm_messages[-1]
            last["content"] = [
                {
                    "type": "text",
                    "text": f"{last['content']}\n(Photo attached: {image_url})",
                },
                {"type": "image_url", "image_url": {"url": image_url}},
            ]
        return llm_messages, recent

    async def _run_tool(
        self,
        name: str,
        arguments: str,
        user_id: str,
        context: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            params = json.loads(arguments) if arguments else {}
        except json.JSONDecodeError:
            logger.warning("Tool %s called with malformed arguments: %s", name, arguments[:200])
            params = {}

        logger.info("Executing tool: %s (user: %s), params: %s", name, user_id, params)
        if not self._action_executor:
            result = {"success": False, "error": "Database unavailable. Please try again later."}
        else:
            result = await self._action_executor.execute(
                name, params, user_id=user_id, context=context
            )
        result["action"] = name
        return result

    # ------------------------------------------------------------------
    # Chat (tool calling)
    # ------------------------------------------------------------------

    async def chat(
        self,
        messages: list[dict],
        user_id: str = "anonymous",
        user_profile: Optional[UserProfile] = None,
        image_url: Optional[str] = None,
    ) -> ChatResult:
        """Answer the latest user message, running any tools the model asks for."""
        llm_messages, recent = self._build_messages(messages, user_profile, image_url)
        context = {"conversation": recent, "user_profile": user_profile}

        logger.info(
            "Chat request: model=%s, user=%s, history=%d", self.model, user_id, len(recent)
        )

        usage = TokenUsage()
        actions: list[dict[str, Any]] = []
        max_iterations = self.coach_settings.max_tool_iterations

        for iteration in range(1, max_iterations + 1):
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=llm_messages,
                tools=TOOLS,
                tool_choice="auto",
                temperature=self.temperature,
            )
            if getattr(response, "usage", None):
                usage.prompt_tokens += response.usage.prompt_tokens
                usage.completion_tokens += response.usage.completion_tokens
                usage.total_tokens += response.usage.total_tokens

            msg = response.choices[0].message
            if not msg.tool_calls:
                text = (msg.content or "").strip()
                if not text and actions:
                    # model went silent after a tool call; surface the tool outcome
                    last = actions[-1]
                    text = last.get("message") or last.get("error") or ""
                logger.info("Chat finished after %d iteration(s)", iteration)
                return ChatResult(message=text, usage=usage, actions=actions)

            llm_messages.append(
                {
                    "role": "assistant",
                    "content": msg.content,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.function.name,
                                "arguments": tc.function.arguments,
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                }
            )
            for tc in msg.tool_calls:
                result = await self._run_tool(
                    tc.function.name, tc.function.arguments, user_id, context
                )
                actions.append(result)
                llm_messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": tc.id,
                        "content": json.dumps(result, ensure_ascii=False, default=str),
                    }
                )

        logger.warning("Chat hit the tool iteration limit (%d)", max_iterations)
        return ChatResult(
            message="Sorry, that took too many steps. Please try again.",
            usage=usage,
            actions=actions,
        )

    async def chat_stream(
        self,
        messages: list[dict],
        user_id: str = "anonymous",
        user_profile: Optional[UserProfile] = None,
        image_url: Optional[str] = None,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Streaming chat with tool calling. Yields text/usage/action_result/error/done events."""
        llm_messages, recent = self._build_messages(messages, user_profile, image_url)
        context = {"conversation": recent, "user_profile": user_profile}

        logger.info(
            "Streaming chat request: model=%s, user=%s, history=%d",
            self.model,
            user_id,
            len(recent),
        )

        max_iterations = self.coach_settings.max_tool_iterations
        iteration = 0
        total_usage = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}

        while iteration < max_iterations:
            iteration += 1

            try:
                stream = await self.client.chat.completions.create(
                    model=self.model,
                    messages=llm_messages,
                    tools=TOOLS,
                    tool_choice="auto",
                    temperature=self.temperature,
                    stream=True,
                    stream_options={"include_usage": True},
                )
            except Exception as e:
                logger.error("LLM request failed: %s", e)
                yield {"event": "error", "data": str(e)}
                return

            full_content = ""
            tool_calls: list[dict] = []

            async for chunk in stream:
                if getattr(chunk, "usage", None):
                    u = chunk.usage
                    total_usage["prompt_tokens"] += u.prompt_tokens
                    total_usage["completion_tokens"] += u.completion_tokens
                    total_usage["total_tokens"] += u.total_tokens
                    yield {"event": "usage", "data": dict(total_usage)}

                if not chunk.choices:
                    continue

                delta = chunk.choices[0].delta
                if delta.content:
                    full_content += delta.content
                    yield {"event": "text", "data": delta.content}

                if delta.tool_calls:
                    for tc_delta in delta.tool_calls:
                        while len(tool_calls) <= tc_delta.index:
                            tool_calls.append(
                                {
                                    "id": None,
                                    "type": "function",
                                    "function": {"name": "", "arguments": ""},
                                }
                            )
                        tc = tool_calls[tc_delta.index]
                        if tc_delta.id:
                            tc["id"] = tc_delta.id
                        if tc_delta.function and tc_delta.function.name:
                            tc["function"]["name"] += tc_delta.function.name
                        if tc_delta.function and tc_delta.function.arguments:
                            tc["function"]["arguments"] += tc_delta.function.arguments

            if not tool_calls:
                break

            llm_messages.append(
                {
                    "role": "assistant",
                    "content": full_content or None,
                    "tool_calls": tool_calls,
                }
            )
            for tc in tool_calls:
                result = await self._run_tool(
                    tc["function"]["name"], tc["function"]["arguments"], user_id, context
                )
                yield {"event": "action_result", "data": result}
                llm_messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": tc["id"],
                        "content": json.dumps(result, ensure_ascii=False, default=str),
                    }
                )

            logger.info("Continuing with tool results")

        logger.info("Streaming chat finished after %d iteration(s)", iteration)
        yield {"event": "done", "data": ""}
