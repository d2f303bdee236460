"""
Notifications router.

  GET /notifications  → newest first (login alerts, security changes, referral bonuses)

The same events are pushed live over /ws/notifications when a socket is open.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.dependencies import get_current_user
from app.models.user import User
from app.schemas.notification import NotificationListResponse, NotificationOut
from app.services.notification_service import list_notifications

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
def get_notifications(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notifications = list_notifications(db, current_user.id, limit=limit)
    return NotificationListResponse(
        total=len(notifications),
        notifications=[NotificationOut.model_validate(n) for n in notifications],
    )
