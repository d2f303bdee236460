"""
Auth router: registration, OTP verification, login, 2FA login, force login,
token refresh, session validation, logout, password reset.

OTP flow for registration:
  1. POST /auth/register   → create user (unverified) + email a 6-digit code
  2. POST /auth/verify-otp → verify code → mark verified → first session

Login:
  POST /auth/login → 200 signed in
                   | 200 {requiresTwoFactor}  → POST /auth/verify-2fa
                   | 403 {requiresVerification}
                   | 409 {requiresForceLogin} → POST /auth/force-login
                                               (or verify-2fa with force_login=true)

Tokens are only ever set as httpOnly cookies (see app.core.cookies); bodies
carry the user profile and the signal flags.

Password reset:
  1. POST /auth/forgot-password → email a reset link (always the same answer)
  2. POST /auth/reset-password  → new password, every session revoked
"""
from typing import Optional

from fastapi import APIRouter, Depends, BackgroundTasks, Request, Response
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.rate_limiter import limiter
from app.core.cookies import set_auth_cookies, clear_auth_cookies, get_refresh_token
from app.core.exceptions import InvalidTokenException
from app.schemas.auth import (
    RegisterRequest, VerifyOTPRequest, ResendOTPRequest, LoginRequest,
    VerifyTwoFactorLoginRequest, ForgotPasswordRequest, ResetPasswordRequest,
    RefreshTokenRequest, MessageResponse, RegisterResponse, AuthResponse,
    RefreshResponse, ValidateSessionResponse,
)
from app.schemas.user import UserOut
from app.services import auth_service, otp_service, session_service
from app.services.device_service import build_device_context
from app.services.email_service import send_verification_code, send_password_reset_link
from app.services.session_service import IssuedSession
from app.services.websocket_manager import get_connection_manager

router = APIRouter()


def signed_in(response: Response, issued: IssuedSession, message: str = "Login successful") -> dict:
    """Sets the auth cookies and builds the AuthResponse body."""
    set_auth_cookies(response, issued.access_token, issued.refresh_token)
    return {
        "user": UserOut.model_validate(issued.user),
        "sessions_invalidated": issued.displaced,
        "message": message,
    }


# ── Register ──────────────────────────────────────────────────────────────────

@router.post("/register", response_model=RegisterResponse, status_code=201)
@limiter.limit("5/minute")
async def register(
    request: Request,
    body: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """
    Step 1 of registration.
    Creates an unverified user account and sends the OTP to their email.
    Uses BackgroundTasks so the HTTP response is returned immediately
    without waiting for SMTP to complete.
    """
    user = auth_service.register_user(
        db,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        referral_code=body.referral_code,
    )

    raw_otp = otp_service.create_otp_record(db, user.email)
    background_tasks.add_task(send_verification_code, user.email, raw_otp, user.first_name)

    return {"email": user.email, "message": "Please check your email for the verification code"}


@router.post("/verify-otp", response_model=AuthResponse)
@limiter.limit("10/minute")
async def verify_otp(
    request: Request,
    response: Response,
    body: VerifyOTPRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Step 2 of registration: verify the OTP and receive the first session."""
    device = await build_device_context(request)
    issued = auth_service.verify_email(
        db,
        email=body.email,
        otp=body.otp,
        device=device,
        connections=get_connection_manager(request),
        background_tasks=background_tasks,
    )
    return signed_in(response, issued, "Email verified successfully")


@router.post("/resend-otp", response_model=MessageResponse)
@limiter.limit("3/minute")
async def resend_otp(
    request: Request,
    body: ResendOTPRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """
    Resend the verification code. Always the same answer for unknown emails
    (prevents email enumeration); already verified accounts get a 400.
    """
    result = auth_service.issue_verification_code(db, body.email)
    if result:
        user, raw_otp = result
        background_tasks.add_task(send_verification_code, user.email, raw_otp, user.first_name)

    return {"message": "If an account exists with this email, a new verification code has been sent."}


# ── Login ─────────────────────────────────────────────────────────────────────

@router.post("/login", response_model=AuthResponse)
@limiter.limit("10/minute")
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Login with email and password."""
    device = await build_device_context(request)
    issued = auth_service.login(
        db,
        email=body.email,
        password=body.password,
        device=device,
        connections=get_connection_manager(request),
        background_tasks=background_tasks,
    )
    return signed_in(response, issued)


@router.post("/force-login", response_model=AuthResponse)
@limiter.limit("5/minute")
async def force_login(
    request: Request,
    response: Response,
    body: LoginRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """
    Re-checks the credentials, then signs out every other device.
    Accounts with 2FA on login get {requiresTwoFactor, requiresForceLogin} and
    finish through /auth/verify-2fa with force_login=true.
    """
    device = await build_device_context(request)
    issued = auth_service.force_login(
        db,
        email=body.email,
        password=body.password,
        device=device,
        connections=get_connection_manager(request),
        background_tasks=background_tasks,
    )
    return signed_in(response, issued, "Logged in. Other devices have been signed out.")


@router.post("/verify-2fa", response_model=AuthResponse)
@limiter.limit("10/minute")
async def verify_two_factor(
    request: Request,
    response: Response,
    body: VerifyTwoFactorLoginRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Second login step: email + password + authenticator or backup code."""
    device = await build_device_context(request)
    issued = auth_service.verify_two_factor_login(
        db,
        email=body.email,
        password=body.password,
        code=body.code,
        device=device,
        force=body.force_login,
        connections=get_connection_manager(request),
        background_tasks=background_tasks,
    )
    return signed_in(response, issued)


# ── Session tokens ────────────────────────────────────────────────────────────

@router.post("/refresh-token", response_model=RefreshResponse)
@limiter.limit("30/minute")
async def refresh_token(
    request: Request,
    response: Response,
    body: Optional[RefreshTokenRequest] = None,
    db: Session = Depends(get_db),
):
    """
    Exchange the refresh token for a new access + refresh pair (rotation).
    A superseded token replayed within 30 seconds gets the current pair;
    after that the whole session is revoked.
    """
    token = get_refresh_token(request, body.refresh_token if body else None)
    if not token:
        raise InvalidTokenException("Refresh token is required")

    issued = session_service.rotate_refresh_token(db, token)
    set_auth_cookies(response, issued.access_token, issued.refresh_token)
    return {"message": "Token refreshed"}


@router.post("/validate-session", response_model=ValidateSessionResponse)
def validate_session(
    request: Request,
    body: Optional[RefreshTokenRequest] = None,
    db: Session = Depends(get_db),
):
    """Polled by the frontend to notice when this device has been signed out."""
    token = get_refresh_token(request, body.refresh_token if body else None)
    return {
        "valid": session_service.validate_session(db, token),
        "check_interval": session_service.SESSION_CHECK_INTERVAL_MS,
    }


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    body: Optional[RefreshTokenRequest] = None,
    db: Session = Depends(get_db),
):
    """Always succeeds, even without a token or for an already ended session."""
    token = get_refresh_token(request, body.refresh_token if body else None)
    session_service.logout(db, token)
    clear_auth_cookies(response)
    return {"message": "Logged out successfully"}


# ── Forgot / Reset Password ───────────────────────────────────────────────────

@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("3/minute")
async def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """
    Send a password reset link.
    ALWAYS returns 200 OK even if email doesn't exist; never reveal account existence.
    """
    result = auth_service.forgot_password(db, body.email)
    if result:  # only send if user exists, but don't tell the caller either way
        user, reset_url = result
        background_tasks.add_task(send_password_reset_link, user.email, user.first_name, reset_url)

    return {"message": "If that email exists, a reset link has been sent"}


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit("5/minute")
async def reset_password(
    request: Request,
    response: Response,
    body: ResetPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Set a new password from a reset link. Signs the user out everywhere."""
    auth_service.reset_password(
        db,
        token=body.token,
        new_password=body.new_password,
        connections=get_connection_manager(request),
        background_tasks=background_tasks,
    )
    clear_auth_cookies(response)
    return {"message": "Password has been reset successfully. Please login with your new password."}
