import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..database.models import ActivitySession

STRENGTH_TRAINING = "strength_training"


class ActivityRepository:
    def __init__(self, session: Session):
        self.session = session

    def create_session(self, activity: ActivitySession) -> ActivitySession:
        self.session.add(activity)
        self.session.commit()
        self.session.refresh(activity)
        return activity

    def get_session(
        self, user_id: str, session_id: str, for_update: bool = False
    ) -> Optional[ActivitySession]:
        stmt = select(ActivitySession).where(
            ActivitySession.user_id == user_id, ActivitySession.id == session_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.scalars(stmt).first()

    def save(self, activity: ActivitySession) -> ActivitySession:
        self.session.add(activity)
        self.session.commit()
        self.session.refresh(activity)
        return activity

    def get_strength_history(self, user_id: str, limit: int = 50) -> list[ActivitySession]:
        """Most recent strength sessions, newest first."""
        stmt = (
            select(ActivitySession)
            .where(
                ActivitySession.user_id == user_id,
                ActivitySession.type == STRENGTH_TRAINING,
            )
            .order_by(ActivitySession.timestamp.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def find_recent_sessions(
        self,
        user_id: str,
        limit: int = 5,
        since: Optional[datetime.datetime] = None,
        activity_type: Optional[str] = None,
    ) -> list[ActivitySession]:
        stmt = select(ActivitySession).where(ActivitySession.user_id == user_id)
        if since is not None:
            stmt = stmt.where(ActivitySession.timestamp >= since)
        if activity_type:
            stmt = stmt.where(ActivitySession.type == activity_type)
        stmt = stmt.order_by(ActivitySession.timestamp.desc()).limit(limit)
        return list(self.session.scalars(stmt).all())
