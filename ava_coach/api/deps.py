from collections.abc import Iterator

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from ..agent import CoachAgent
from ..config import Settings
from ..services.photo_storage import PhotoStorage


def get_agent(request: Request) -> CoachAgent:
    """The chat agent, built on first use so non-chat routes run without an LLM key."""
    state = request.app.state
    if state.agent is None:
        try:
            state.agent = CoachAgent.from_settings(state.settings, session_factory=state.db.get_session)
        except ValueError as e:
            raise HTTPException(status_code=503, detail=str(e))
    return state.agent


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> PhotoStorage:
    return request.app.state.storage


def get_db_session(request: Request) -> Iterator[Session]:
    session = request.app.state.db.get_session()
    try:
        yield session
    finally:
        session.close()
