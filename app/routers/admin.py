"""
Admin router: account status management.

Every endpoint:
  - Requires get_current_admin dependency (role admin or superadmin)
  - Writes an audit log after any state-changing operation
  - Returns structured responses

Endpoints:
  PUT  /admin/users/{id}/deactivate
  PUT  /admin/users/{id}/activate
  GET  /admin/audit-logs
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.dependencies import get_current_admin
from app.middleware.audit_middleware import log_admin_action, DEACTIVATE_USER, ACTIVATE_USER
from app.models.user import User
from app.models.audit_log import AuditLog
from app.schemas.admin import UserStatusResponse, AuditLogOut, AuditLogListResponse
from app.schemas.user import UserOut
from app.services import auth_service

router = APIRouter()


# ── User Management ───────────────────────────────────────────────────────────

@router.put("/users/{user_id}/deactivate", response_model=UserStatusResponse)
def deactivate_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    """
    Deactivate a user account.
    Every session is revoked, so their refresh tokens stop working at once and
    access tokens are rejected because get_current_user checks is_active.
    """
    user, revoked = auth_service.set_user_active(db, user_id, False, admin)

    log_admin_action(
        db, admin_id=admin.id, action=DEACTIVATE_USER,
        target_type="user", target_id=str(user.id),
        details={"email": user.email, "sessions_revoked": revoked},
    )
    return UserStatusResponse(
        message=f"User '{user.email}' has been deactivated.",
        user=UserOut.model_validate(user),
        sessions_revoked=revoked,
    )


@router.put("/users/{user_id}/activate", response_model=UserStatusResponse)
def activate_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    """Reactivate a deactivated account. The user has to log in again."""
    user, _ = auth_service.set_user_active(db, user_id, True, admin)

    log_admin_action(
        db, admin_id=admin.id, action=ACTIVATE_USER,
        target_type="user", target_id=str(user.id),
        details={"email": user.email},
    )
    return UserStatusResponse(
        message=f"User '{user.email}' has been activated.",
        user=UserOut.model_validate(user),
    )


# ── Audit Logs ────────────────────────────────────────────────────────────────

@router.get("/audit-logs", response_model=AuditLogListResponse)
def get_audit_logs(
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    action: Optional[str] = Query(None, description="Filter by action type"),
    target_id: Optional[str] = Query(None, description="Filter by affected entity id"),
):
    """
    Read-only audit log. Newest entries first.
    Can be filtered by action type (e.g., 'DEACTIVATE_USER') or by target id.
    """
    query = db.query(AuditLog)

    if action:
        query = query.filter(AuditLog.action == action.upper())
    if target_id:
        query = query.filter(AuditLog.target_id == target_id)

    total = query.count()
    logs = (
        query.order_by(AuditLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return AuditLogListResponse(
        total=total,
        page=page,
        limit=limit,
        logs=[AuditLogOut.model_validate(log) for log in logs],
    )
