"""
Notification sink.

create_notification() is fire-and-forget from the caller's point of view: it
never raises. A failed insert is rolled back and logged so it cannot poison
the surrounding auth operation's session.
"""
import logging
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.notification import Notification
from app.services.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    user_id,
    type: str,
    title: str,
    message: str,
    connections: Optional[ConnectionManager] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Optional[Notification]:
    """
    Insert a notification row and, when a connection registry and background
    task queue are supplied, push it to the user's open sockets after the
    response is sent.
    """
    try:
        notification = Notification(user_id=user_id, type=type, title=title, message=message)
        db.add(notification)
        db.commit()
        db.refresh(notification)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Failed to create {type} notification for user {user_id}: {exc}")
        return None

    if connections is not None and background_tasks is not None:
        background_tasks.add_task(
            connections.push_to_user,
            str(user_id),
            {
                "type": "NOTIFICATION",
                "id": str(notification.id),
                "notificationType": notification.type,
                "title": notification.title,
                "message": notification.message,
            },
        )
    return notification


def list_notifications(db: Session, user_id, limit: int = 50) -> list[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .all()
    )
