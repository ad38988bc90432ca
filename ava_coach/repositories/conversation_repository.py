import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..database.models import ChatMessage


class ConversationRepository:
    def __init__(self, session: Session):
        self.session = session

    def save_message(
        self,
        user_id: str,
        role: str,
        content: str,
        timestamp: Optional[datetime.datetime] = None,
    ) -> ChatMessage:
        message = ChatMessage(user_id=user_id, role=role, content=content)
        if timestamp is not None:
            message.timestamp = timestamp
        self.session.add(message)
        self.session.commit()
        self.session.refresh(message)
        return message

    def load_history(self, user_id: str, limit: Optional[int] = None) -> list[ChatMessage]:
        """Messages in chronological order; with a limit, the newest ``limit`` of them."""
        if limit is None:
            stmt = (
                select(ChatMessage)
                .where(ChatMessage.user_id == user_id)
                .order_by(ChatMessage.timestamp.asc(), ChatMessage.created_at.asc())
            )
            return list(self.session.scalars(stmt).all())

        stmt = (
            select(ChatMessage)
            .where(ChatMessage.user_id == user_id)
            .order_by(ChatMessage.timestamp.desc(), ChatMessage.created_at.desc())
            .limit(limit)
        )
        return list(reversed(self.session.scalars(stmt).all()))
