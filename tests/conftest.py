import json
from types import SimpleNamespace

import pytest

from ava_coach.action_executor import ActionExecutor
from ava_coach.database.db_manager import DBManager


def text_response(content, prompt_tokens=10, completion_tokens=5):
    message = SimpleNamespace(content=content, tool_calls=None)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        ),
    )


def tool_response(*calls, content=None):
    """calls: (call_id, tool_name, arguments dict) tuples."""
    tool_calls = [
        SimpleNamespace(
            id=call_id,
            type="function",
            function=SimpleNamespace(name=name, arguments=json.dumps(args)),
        )
        for call_id, name, args in calls
    ]
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(prompt_tokens=20, completion_tokens=8, total_tokens=28),
    )


def stream_text_chunks(*parts):
    chunks = [
        SimpleNamespace(
            choices=[SimpleNamespace(delta=SimpleNamespace(content=p, tool_calls=None))],
            usage=None,
        )
        for p in parts
    ]
    chunks.append(
        SimpleNamespace(
            choices=[],
            usage=SimpleNamespace(prompt_tokens=12, completion_tokens=4, total_tokens=16),
        )
    )
    return chunks


def stream_tool_chunks(call_id, name, args):
    """A tool call streamed in two argument fragments."""
    raw = json.dumps(args)
    half = len(raw) // 2
    first = SimpleNamespace(
        index=0, id=call_id, function=SimpleNamespace(name=name, arguments=raw[:half])
    )
    second = SimpleNamespace(index=0, id=None, function=SimpleNamespace(name=None, arguments=raw[half:]))
    return [
        SimpleNamespace(
            choices=[SimpleNamespace(delta=SimpleNamespace(content=None, tool_calls=[first]))],
            usage=None,
        ),
        SimpleNamespace(
            choices=[SimpleNamespace(delta=SimpleNamespace(content=None, tool_calls=[second]))],
            usage=None,
        ),
    ]


class _FakeStream:
    def __init__(self, chunks):
        self._chunks = list(chunks)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)


class _FakeCompletions:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if not self.responses:
            raise AssertionError("Unexpected LLM call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if kwargs.get("stream"):
            return _FakeStream(response)
        return response


class FakeLLMClient:
    """Stands in for AsyncOpenAI; replies are consumed in order."""

    def __init__(self, *responses):
        self.completions = _FakeCompletions(responses)
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self):
        return self.completions.calls


@pytest.fixture
def db(tmp_path):
    manager = DBManager(f"sqlite:///{tmp_path / 'coach.db'}")
    manager.init_db()
    yield manager
    manager.dispose()


@pytest.fixture
def executor(db):
    return ActionExecutor(db.get_session)


@pytest.fixture
def breakfast_params():
    return {
        "meal_type": "breakfast",
        "foods": [
            {"name": "Eggs", "quantity": "2 eggs", "calories": 140, "protein": 12, "carbs": 1, "fats": 10, "fiber": 0},
            {"name": "Toast", "quantity": "1 slice", "calories": 80, "protein": 3, "carbs": 15, "fats": 1, "fiber": 2},
        ],
    }
