"""
Sessions router: the signed-in user's device list.

Endpoints:
  GET    /sessions       → active sessions, the caller's own flagged `current`
  DELETE /sessions/{id}  → sign out another device (your own: use /auth/logout)
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.cookies import get_refresh_token
from app.core.dependencies import get_current_user
from app.models.user import User
from app.schemas.auth import MessageResponse
from app.schemas.session import SessionListResponse
from app.services import session_service

router = APIRouter()


@router.get("", response_model=SessionListResponse)
def list_sessions(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sessions = session_service.list_sessions(db, current_user.id, get_refresh_token(request))
    return {"total": len(sessions), "sessions": sessions}


@router.delete("/{session_id}", response_model=MessageResponse)
def revoke_session(
    session_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session_service.revoke_session(db, current_user.id, session_id, get_refresh_token(request))
    return {"message": "Session revoked successfully"}
