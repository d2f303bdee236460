"""
Auth service: higher-level auth operations that combine multiple lower-level services.
Keeps routers thin; routers only handle HTTP, services handle logic.

Registration:
  register_user → (router sends the OTP) → verify_email → first session

Password login:
  authenticate_credentials → [2FA gate] → session_service.open_session
  force_login and verify_two_factor_login re-run authenticate_credentials from
  scratch; neither trusts an earlier successful check.

Password reset:
  forgot_password → (router emails the link) → reset_password → every session revoked
"""
import logging
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.config import settings
from app.core.clock import utcnow, as_utc
from app.core.exceptions import (
    AlreadyVerifiedException,
    BadRequestException,
    ConflictException,
    EmailNotVerifiedException,
    InvalidCredentialsException,
    InvalidOTPException,
    InvalidResetTokenException,
    InvalidTwoFactorCodeException,
    NotFoundException,
    ResetTokenExpiredException,
    ResetTokenUsedException,
    TwoFactorRequiredException,
)
from app.core.security import hash_password, verify_password, pwd_context
from app.models.otp import PasswordResetToken
from app.models.user import User
from app.services import notification_service, referral_service, session_service
from app.services.credential_service import (
    CREDENTIALS_PROVIDER,
    create_user_with_account,
    get_account,
    get_user_by_email,
    get_user_by_id,
    get_user_by_referral_code,
    normalize_email,
    set_password,
)
from app.services.device_service import DeviceContext
from app.services.email_service import send_login_alert
from app.services.otp_service import create_otp_record, verify_otp_record
from app.services.session_service import IssuedSession
from app.services.two_factor_service import login_requires_two_factor, verify_login_code
from app.services.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)

RESET_TOKEN_EXPIRY = timedelta(hours=1)

# Pre-computed bcrypt hash used ONLY for constant-time comparison when the user
# doesn't exist; prevents timing attacks that reveal valid email addresses.
# Generated once at module load. Never stored anywhere or used for real auth.
_DUMMY_HASH: str = pwd_context.hash("__dummy_timing_prevention__")


# ── Registration & email verification ─────────────────────────────────────────

def register_user(
    db: Session,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: Optional[str] = None,
    referral_code: Optional[str] = None,
) -> User:
    """
    Creates an unverified user with a credentials account.
    Does NOT issue a session; that happens after OTP verification.
    """
    email = normalize_email(email)
    if get_user_by_email(db, email):
        raise ConflictException("An account with this email already exists")

    referrer = None
    if referral_code:
        referrer = get_user_by_referral_code(db, referral_code)
        if not referrer:
            raise BadRequestException("Invalid referral code")

    user = create_user_with_account(
        db,
        email=email,
        provider=CREDENTIALS_PROVIDER,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        password_hash=hash_password(password),
        referred_by=referrer,
    )
    return user


def issue_verification_code(db: Session, email: str) -> Optional[tuple[User, str]]:
    """
    Fresh OTP for an unverified account, or None when the email is unknown
    or the account is deactivated
    (callers answer generically so accounts can't be enumerated).
    """
    user = get_user_by_email(db, email)
    if not user or not user.is_active:
        return None
    if user.email_verified:
        raise AlreadyVerifiedException()
    return user, create_otp_record(db, user.email)


def verify_email(
    db: Session,
    email: str,
    otp: str,
    device: DeviceContext,
    connections: Optional[ConnectionManager] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> IssuedSession:
    """
    Checks the OTP, marks the email verified, pays any referral bonus and
    opens the first session.
    """
    user = get_user_by_email(db, email)
    if not user:
        raise InvalidOTPException()
    if not user.is_active:
        logger.warning(f"Email verification refused: account inactive - {user.email}")
        raise InvalidOTPException()
    if user.email_verified:
        raise AlreadyVerifiedException()

    verify_otp_record(db, user.email, otp)

    user.email_verified = True
    db.commit()
    db.refresh(user)
    logger.info(f"Email verified: {user.email}")

    credit_referral(db, user, connections, background_tasks)

    issued = session_service.open_session(db, user, device)
    record_login(db, issued, device, connections, background_tasks)
    return issued


def credit_referral(
    db: Session,
    user: User,
    connections: Optional[ConnectionManager] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> None:
    """Referral bonus failures are logged and never fail the calling flow."""
    try:
        referral = referral_service.credit_referral_bonus(db, user)
    except Exception as exc:
        logger.error(f"Error processing referral bonus for {user.email}: {exc}")
        return
    if referral is None:
        return

    bonus = referral.reward
    notification_service.create_notification(
        db,
        referral.referrer_id,
        "referral",
        "Referral bonus earned",
        f"{user.display_name or user.email} joined using your referral code. "
        f"{bonus} has been added to your balance.",
        connections,
        background_tasks,
    )
    notification_service.create_notification(
        db,
        user.id,
        "referral",
        "Welcome bonus",
        f"You received a {bonus} welcome bonus for joining via referral.",
        connections,
        background_tasks,
    )


# ── Login ─────────────────────────────────────────────────────────────────────

def authenticate_credentials(db: Session, email: str, password: str, ip_address: str = "") -> User:
    """
    Validates email + password. Returns the user if valid.

    Security: always use the same error regardless of whether the email
    exists, the account is deactivated, the user only ever signed in with
    Google, or the password is wrong (prevents user enumeration).
    Email verification is checked last, once the password has been proven.
    """
    email = normalize_email(email)
    user = get_user_by_email(db, email)
    account = get_account(db, user.id, CREDENTIALS_PROVIDER) if user else None
    password_hash = account.password_hash if account else None

    # Always run verify_password so "no such user" costs the same as "wrong password".
    # _DUMMY_HASH is a real valid bcrypt hash; passlib won't raise on it.
    password_ok = verify_password(password, password_hash or _DUMMY_HASH)

    if not user:
        logger.warning(f"Login failed: user not found - {email} ({ip_address})")
        raise InvalidCredentialsException()
    if not user.is_active:
        logger.warning(f"Login failed: account inactive - {email} ({ip_address})")
        raise InvalidCredentialsException()
    if not password_hash:
        logger.warning(f"Login failed: no credentials account (OAuth only) - {email} ({ip_address})")
        raise InvalidCredentialsException()
    if not password_ok:
        logger.warning(f"Login failed: incorrect password - {email} ({ip_address})")
        raise InvalidCredentialsException()
    if not user.email_verified:
        logger.info(f"Login refused: email not verified - {email}")
        raise EmailNotVerifiedException(user.email)
    return user


def login(
    db: Session,
    email: str,
    password: str,
    device: DeviceContext,
    force: bool = False,
    connections: Optional[ConnectionManager] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> IssuedSession:
    """
    Password login. Accounts that demand 2FA on login stop here with
    TwoFactorRequiredException, before any session is touched.
    """
    user = authenticate_credentials(db, email, password, device.ip_address)

    if login_requires_two_factor(user):
        logger.info(f"2FA required for {'force ' if force else ''}login: {user.email}")
        raise TwoFactorRequiredException(user.email, force_login=force)

    issued = session_service.open_session(db, user, device, force=force)
    record_login(db, issued, device, connections, background_tasks)
    return issued


def force_login(
    db: Session,
    email: str,
    password: str,
    device: DeviceContext,
    connections: Optional[ConnectionManager] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> IssuedSession:
    """Same checks as login(), then displaces every other session."""
    return login(db, email, password, device, True, connections, background_tasks)


def verify_two_factor_login(
    db: Session,
    email: str,
    password: str,
    code: str,
    device: DeviceContext,
    force: bool = False,
    connections: Optional[ConnectionManager] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> IssuedSession:
    """
    Second login step for accounts with 2FA required on login. Credentials
    are re-checked, then the code, and only then are sessions displaced:
    a wrong code leaves every existing session untouched.
    """
    user = authenticate_credentials(db, email, password, device.ip_address)

    if not verify_login_code(db, user, code):
        logger.warning(f"Login failed: invalid 2FA code - {user.email} ({device.ip_address})")
        raise InvalidTwoFactorCodeException()

    issued = session_service.open_session(db, user, device, force=force, requires_two_factor=True)
    record_login(db, issued, device, connections, background_tasks)
    return issued


def record_login(
    db: Session,
    issued: IssuedSession,
    device: DeviceContext,
    connections: Optional[ConnectionManager] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> None:
    """Login alert: a notification row plus an email queued after the response."""
    user = issued.user
    notification_service.create_notification(
        db,
        user.id,
        "login_alert",
        "New sign-in",
        f"New sign-in from {device.browser} on {device.device} ({device.location}).",
        connections,
        background_tasks,
    )
    if background_tasks is not None:
        background_tasks.add_task(
            send_login_alert,
            user.email,
            user.first_name,
            device.device,
            device.browser,
            device.location,
            device.ip_address,
        )
    logger.info(f"Login successful: {user.email} from {device.location}")


# ── Password reset ────────────────────────────────────────────────────────────

def forgot_password(db: Session, email: str) -> Optional[tuple[User, str]]:
    """
    Returns (user, reset_url) for an active account, None otherwise.
    The caller answers identically in both cases.
    """
    email = normalize_email(email)
    user = get_user_by_email(db, email)
    if not user or not user.is_active:
        logger.info(f"Password reset requested for non-existent/inactive email: {email}")
        return None

    # One live token per email
    db.query(PasswordResetToken).filter(PasswordResetToken.email == email).delete(
        synchronize_session=False
    )
    token = secrets.token_hex(32)
    db.add(PasswordResetToken(
        email=email,
        token=token,
        used=False,
        expires_at=utcnow() + RESET_TOKEN_EXPIRY,
    ))
    db.commit()

    reset_url = f"{settings.frontend_base_url}/reset-password?token={token}"
    return user, reset_url


def reset_password(
    db: Session,
    token: str,
    new_password: str,
    connections: Optional[ConnectionManager] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> User:
    """
    Sets a new password (creating a credentials account for OAuth-only users)
    and logs the user out everywhere.
    """
    record = db.query(PasswordResetToken).filter(PasswordResetToken.token == token).first()
    if not record:
        raise InvalidResetTokenException()

    if utcnow() > as_utc(record.expires_at):
        db.delete(record)
        db.commit()
        raise ResetTokenExpiredException()

    if record.used:
        raise ResetTokenUsedException()

    user = get_user_by_email(db, record.email)
    if not user:
        raise InvalidResetTokenException()

    set_password(db, user, hash_password(new_password))
    record.used = True
    db.commit()

    session_service.invalidate_all_sessions(db, user.id)
    logger.info(f"Password reset successful for {user.email}")

    notification_service.create_notification(
        db,
        user.id,
        "security",
        "Password changed",
        "Your password was reset and all devices were signed out.",
        connections,
        background_tasks,
    )
    return user


# ── Account status (admin) ────────────────────────────────────────────────────

def set_user_active(db: Session, user_id, active: bool, actor: User) -> tuple[User, int]:
    """
    Deactivation is a flag flip (users are never deleted) that also revokes
    every session. Admins cannot deactivate themselves.
    Returns (user, number of sessions revoked).
    """
    user = get_user_by_id(db, user_id)
    if not user:
        raise NotFoundException("User")
    if not active and user.id == actor.id:
        raise BadRequestException("You cannot deactivate your own account")

    user.is_active = active
    db.commit()
    db.refresh(user)

    revoked = 0
    if not active:
        revoked = session_service.invalidate_all_sessions(db, user.id)
    logger.info(f"User {user.email} {'activated' if active else 'deactivated'} by {actor.email}")
    return user, revoked
