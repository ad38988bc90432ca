import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...agent import CoachAgent
from ...repositories.conversation_repository import ConversationRepository
from ...schemas import ChatRequest
from ...utils import isoformat_utc
from ..deps import get_agent, get_db_session

logger = logging.getLogger("ava_coach.api.chat")

router = APIRouter(prefix="/api/chat", tags=["chat"])

ANONYMOUS_USER = "anonymous"


async def _parse_chat_request(request: Request) -> tuple[Optional[ChatRequest], Optional[JSONResponse]]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None
    if not isinstance(body, dict) or not isinstance(body.get("messages"), list):
        return None, JSONResponse(status_code=400, content={"error": "Messages array is required"})
    try:
        return ChatRequest.model_validate(body), None
    except ValidationError as e:
        return None, JSONResponse(
            status_code=400, content={"error": "Invalid request", "details": str(e)}
        )


def _last_user_text(chat_request: ChatRequest) -> str:
    for message in reversed(chat_request.messages):
        if message.role == "user":
            content = message.content
            if isinstance(content, list):
                return " ".join(
                    str(p.get("text", "")) for p in content if isinstance(p, dict)
                ).strip()
            return str(content or "")
    return ""


def _persist_exchange(session: Session, user_id: str, user_text: str, reply: str) -> None:
    """Store the exchange; a storage failure is logged and does not fail the reply."""
    try:
        repo = ConversationRepository(session)
        if user_text:
            repo.save_message(user_id, "user", user_text)
        if reply:
            repo.save_message(user_id, "assistant", reply)
    except Exception:
        session.rollback()
        logger.exception("Failed to save chat history for %s", user_id)


@router.post("")
async def chat(
    request: Request,
    agent: CoachAgent = Depends(get_agent),
    session: Session = Depends(get_db_session),
):
    chat_request, error = await _parse_chat_request(request)
    if error is not None:
        return error

    try:
        result = await agent.chat(
            [m.model_dump() for m in chat_request.messages],
            user_id=chat_request.user_id or ANONYMOUS_USER,
            user_profile=chat_request.user_profile,
            image_url=chat_request.image_url,
        )
    except Exception as e:
        logger.exception("Chat request failed")
        return JSONResponse(
            status_code=500, content={"error": "Internal Server Error", "details": str(e)}
        )

    if chat_request.user_id:
        _persist_exchange(
            session, chat_request.user_id, _last_user_text(chat_request), result.message
        )

    return result.model_dump()


def _sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False, default=str)}\n\n"


@router.post("/stream")
async def chat_stream(request: Request, agent: CoachAgent = Depends(get_agent)):
    chat_request, error = await _parse_chat_request(request)
    if error is not None:
        return error

    async def event_source():
        reply = ""
        try:
            async for event in agent.chat_stream(
                [m.model_dump() for m in chat_request.messages],
                user_id=chat_request.user_id or ANONYMOUS_USER,
                user_profile=chat_request.user_profile,
                image_url=chat_request.image_url,
            ):
                if event["event"] == "text":
                    reply += event["data"]
                yield _sse(event["event"], event["data"])
            if chat_request.user_id:
                # the response outlives request-scoped dependencies
                with request.app.state.db.get_session() as session:
                    _persist_exchange(
                        session, chat_request.user_id, _last_user_text(chat_request), reply
                    )
        except Exception as e:
            logger.exception("Streaming chat failed")
            yield _sse("error", str(e))

    return StreamingResponse(event_source(), media_type="text/event-stream")


@router.get("/history/{user_id}")
def chat_history(
    user_id: str,
    limit: Optional[int] = None,
    session: Session = Depends(get_db_session),
):
    messages = ConversationRepository(session).load_history(user_id, limit=limit)
    return {
        "user_id": user_id,
        "messages": [
            {"role": m.role, "content": m.content, "timestamp": isoformat_utc(m.timestamp)}
            for m in messages
        ],
    }
