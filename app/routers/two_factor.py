"""
Two-factor router: TOTP management for the signed-in user.

Endpoints:
  GET  /2fa/status
  POST /2fa/setup                    → secret + QR code (provisioned, not yet on)
  POST /2fa/enable                   → confirm with a code, receive 10 backup codes
  POST /2fa/disable                  → live authenticator code only
  POST /2fa/backup-codes/regenerate  → live authenticator code, 10 fresh codes
  POST /2fa/require-login            → ask for a code on every login
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.dependencies import get_current_user
from app.models.user import User
from app.schemas.auth import MessageResponse
from app.schemas.two_factor import (
    TwoFactorCodeRequest,
    TwoFactorSetupResponse,
    BackupCodesResponse,
    TwoFactorStatusResponse,
    RequireLoginRequest,
    RequireLoginResponse,
)
from app.services import two_factor_service
from app.services.notification_service import create_notification
from app.services.websocket_manager import get_connection_manager

router = APIRouter()


@router.get("/status", response_model=TwoFactorStatusResponse)
def status(current_user: User = Depends(get_current_user)):
    return two_factor_service.two_factor_status(current_user)


@router.post("/setup", response_model=TwoFactorSetupResponse)
def setup(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return two_factor_service.setup_two_factor(db, current_user)


@router.post("/enable", response_model=BackupCodesResponse)
def enable(
    body: TwoFactorCodeRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    codes = two_factor_service.enable_two_factor(db, current_user, body.code)
    create_notification(
        db, current_user.id, "security",
        "Two-factor authentication enabled",
        "Two-factor authentication is now protecting your account.",
        get_connection_manager(request), background_tasks,
    )
    return {"backup_codes": codes}


@router.post("/disable", response_model=MessageResponse)
def disable(
    body: TwoFactorCodeRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    two_factor_service.disable_two_factor(db, current_user, body.code)
    create_notification(
        db, current_user.id, "security",
        "Two-factor authentication disabled",
        "Two-factor authentication was turned off for your account.",
        get_connection_manager(request), background_tasks,
    )
    return {"message": "Two-factor authentication has been disabled"}


@router.post("/backup-codes/regenerate", response_model=BackupCodesResponse)
def regenerate_backup_codes(
    body: TwoFactorCodeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"backup_codes": two_factor_service.regenerate_backup_codes(db, current_user, body.code)}


@router.post("/require-login", response_model=RequireLoginResponse)
def require_login(
    body: RequireLoginRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    required = two_factor_service.set_login_requirement(db, current_user, body.require)
    return {"require_on_login": required}
