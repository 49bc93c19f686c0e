from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from rootra.core.auth import AuthUser, get_current_user
from rootra.db.session import get_db
from rootra.schemas.notification import NotificationOut
from rootra.services.notifications import list_notifications, mark_read

router = APIRouter()


@router.get("")
def notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> dict:
    rows = list_notifications(db, current_user.user_id, unread_only=unread_only, limit=limit)
    return {
        "rows": [NotificationOut.model_validate(n) for n in rows],
        "unread": sum(1 for n in rows if not n.is_read),
    }


@router.patch("/{notification_id}/read")
def read_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> NotificationOut:
    return NotificationOut.model_validate(mark_read(db, current_user.user_id, notification_id))
