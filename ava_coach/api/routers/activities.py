import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...repositories.activity_repository import ActivityRepository
from ...services.activities import serialize_activity
from ...utils import utc_now
from ..deps import get_db_session

router = APIRouter(prefix="/api/activities", tags=["activities"])


@router.get("/{user_id}/sessions")
def list_sessions(
    user_id: str,
    limit: int = Query(10, ge=1, le=50),
    within_minutes: Optional[float] = Query(None, gt=0),
    type: Optional[str] = None,
    session: Session = Depends(get_db_session),
):
    """Newest sessions first; without ``within_minutes`` there is no time window."""
    since = None
    if within_minutes is not None:
        since = utc_now() - datetime.timedelta(minutes=within_minutes)
    sessions = ActivityRepository(session).find_recent_sessions(
        user_id, limit=limit, since=since, activity_type=type
    )
    return {"sessions": [serialize_activity(s) for s in sessions]}
