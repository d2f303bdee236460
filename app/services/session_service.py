"""
Session manager: issuance, single-device policy, refresh-token rotation, revocation.

Session lifecycle:
    active ──rotate──► active (previous token in grace window) ──► inactive
Inactive is terminal; a session is never re-activated and never deleted.

Single-device policy (open_session):
  - no active sessions               → create
  - an active session on the same
    (device, browser) pair           → deactivate all of the user's sessions, create
  - active sessions, none matching   → refuse with SessionConflictException; the
                                       client must go through force login
  - force=True                       → deactivate all, create

Concurrency: "list active sessions → decide → write" runs with the user's row
locked (SELECT ... FOR UPDATE), the same way referral credits are guarded, so
two simultaneous logins for one user are serialised by the database.
Backends without row locks (SQLite) fall back to the plain read-then-write.

Refresh rotation (rotate_refresh_token): the superseded token stays valid for
REFRESH_GRACE_PERIOD so that a client retrying a refresh whose response it
never saw is not logged out. Replaying it after the window is treated as
token theft and kills the session.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.config import settings
from app.core.clock import utcnow, as_utc
from app.core.exceptions import (
    BadRequestException,
    InvalidTokenException,
    NotFoundException,
    SessionConflictException,
    SessionRevokedException,
)
from app.core.security import (
    TokenClaims,
    TokenExpiredError,
    TokenInvalidError,
    sign_access_token,
    sign_refresh_token,
    verify_refresh_token,
)
from app.models.session import UserSession
from app.models.user import User
from app.services.credential_service import get_user_by_id, parse_uuid
from app.services.device_service import DeviceContext

logger = logging.getLogger(__name__)

# A rotated-out refresh token stays usable this long after rotation
REFRESH_GRACE_PERIOD = timedelta(seconds=30)
# How often the frontend should poll /auth/validate-session
SESSION_CHECK_INTERVAL_MS = 5000


@dataclass
class IssuedSession:
    user: User
    session: UserSession
    access_token: str
    refresh_token: str
    # Sessions deactivated to make room for this one
    displaced: int = 0


def _session_lifetime() -> timedelta:
    return timedelta(days=settings.refresh_token_expire_days)


def _lock_user(db: Session, user_id) -> Optional[User]:
    return db.execute(select(User).where(User.id == user_id).with_for_update()).scalar_one_or_none()


def _active_sessions(db: Session, user_id) -> list[UserSession]:
    return (
        db.query(UserSession)
        .filter(UserSession.user_id == user_id, UserSession.is_active == True)  # noqa: E712
        .order_by(UserSession.last_active.desc())
        .all()
    )


def _deactivate_all(db: Session, user_id) -> int:
    """Flags every active session of the user inactive. Does not commit."""
    result = db.execute(
        update(UserSession)
        .where(UserSession.user_id == user_id, UserSession.is_active == True)  # noqa: E712
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def describe_session(session: UserSession) -> dict:
    last_active = as_utc(session.last_active)
    return {
        "device": session.device,
        "browser": session.browser,
        "location": session.location,
        "lastActive": last_active.isoformat() if last_active else None,
    }


def open_session(
    db: Session,
    user: User,
    device: DeviceContext,
    force: bool = False,
    requires_two_factor: bool = False,
) -> IssuedSession:
    """
    Creates the session that follows a successful authentication.

    Callers must have fully re-verified the user (password and, where
    required, 2FA) before calling with force=True: this function trusts
    its caller and displaces every other session.

    requires_two_factor only decorates the conflict response of the 2FA
    login step, so the client knows to re-send the code with force_login.
    """
    _lock_user(db, user.id)

    displaced = 0
    if force:
        displaced = _deactivate_all(db, user.id)
        logger.info(f"Force login: invalidated {displaced} session(s) for {user.email}")
    else:
        existing = _active_sessions(db, user.id)
        if existing:
            same_device = any(
                s.device == device.device and s.browser == device.browser for s in existing
            )
            if not same_device:
                db.rollback()  # release the row lock before answering
                logger.warning(
                    f"Login for {user.email} from {device.device}/{device.browser} "
                    f"({device.ip_address}) blocked: active session on another device"
                )
                raise SessionConflictException(
                    existing_session=describe_session(existing[0]),
                    new_device=device.describe(),
                    requires_two_factor=requires_two_factor,
                )
            displaced = _deactivate_all(db, user.id)
            logger.info(f"Same-device re-login for {user.email}, refreshing session")

    claims = TokenClaims.for_user(user)
    refresh_token = sign_refresh_token(claims)
    access_token = sign_access_token(claims)

    now = utcnow()
    session = UserSession(
        user_id=user.id,
        token=refresh_token,
        device=device.device,
        browser=device.browser,
        ip_address=device.ip_address,
        location=device.location,
        is_active=True,
        last_active=now,
        expires_at=now + _session_lifetime(),
    )
    db.add(session)
    db.commit()
    db.refresh(session)

    return IssuedSession(
        user=user,
        session=session,
        access_token=access_token,
        refresh_token=refresh_token,
        displaced=displaced,
    )


def rotate_refresh_token(db: Session, token: str) -> IssuedSession:
    """
    Exchanges a refresh token for a fresh (access, refresh) pair.

    - current token of an active session   → rotate
    - previous token, within grace window  → new access token, *same* already-rotated
                                             refresh token (no second rotation)
    - previous token, after grace window   → session killed, SessionRevokedException
    - anything else / inactive session     → SessionRevokedException
    """
    try:
        verify_refresh_token(token)
    except (TokenExpiredError, TokenInvalidError):
        raise InvalidTokenException("Invalid or expired refresh token")

    session = (
        db.query(UserSession)
        .filter(UserSession.token == token)
        .with_for_update()
        .first()
    )

    if session is None:
        session = (
            db.query(UserSession)
            .filter(UserSession.previous_token == token)
            .with_for_update()
            .first()
        )
        if session is None or not session.is_active:
            raise SessionRevokedException()
        return _replay_within_grace(db, session)

    if not session.is_active:
        raise SessionRevokedException()

    now = utcnow()
    if as_utc(session.expires_at) <= now:
        session.is_active = False
        db.commit()
        raise SessionRevokedException("Session has expired. Please login again.")

    user = _session_user(db, session)
    claims = TokenClaims.for_user(user)
    new_refresh = sign_refresh_token(claims)
    new_access = sign_access_token(claims)

    session.previous_token = token
    session.token_rotated_at = now
    session.token = new_refresh
    session.last_active = now
    session.expires_at = now + _session_lifetime()
    db.commit()
    db.refresh(session)

    return IssuedSession(user=user, session=session, access_token=new_access, refresh_token=new_refresh)


def _replay_within_grace(db: Session, session: UserSession) -> IssuedSession:
    rotated_at = as_utc(session.token_rotated_at)
    if rotated_at is None or utcnow() - rotated_at > REFRESH_GRACE_PERIOD:
        session.is_active = False
        db.commit()
        logger.warning(
            f"Refresh token reuse detected after grace period for session {session.id}. "
            f"Session invalidated."
        )
        raise SessionRevokedException("Session has been revoked for security. Please login again.")

    user = _session_user(db, session)
    access_token = sign_access_token(TokenClaims.for_user(user))
    return IssuedSession(user=user, session=session, access_token=access_token, refresh_token=session.token)


def _session_user(db: Session, session: UserSession) -> User:
    user = get_user_by_id(db, session.user_id)
    if user is None or not user.is_active:
        session.is_active = False
        db.commit()
        raise SessionRevokedException()
    return user


def invalidate_all_sessions(db: Session, user_id) -> int:
    """Password reset / deactivation: log the user out everywhere."""
    count = _deactivate_all(db, user_id)
    db.commit()
    logger.info(f"Invalidated {count} active session(s) for user {user_id}")
    return count


def logout(db: Session, token: Optional[str]) -> bool:
    """
    Idempotent: a missing token or an unknown/already inactive session is
    still a successful logout. Returns True when a session was deactivated.
    """
    if not token:
        return False

    session = (
        db.query(UserSession)
        .filter(UserSession.token == token, UserSession.is_active == True)  # noqa: E712
        .first()
    )
    if session is None:
        logger.info("Logout called with non-existent or already logged out session")
        return False

    session.is_active = False
    db.commit()
    logger.info(f"Logout successful for session {session.id}")
    return True


def validate_session(db: Session, token: Optional[str]) -> bool:
    if not token:
        return False
    session = db.query(UserSession).filter(UserSession.token == token).first()
    return bool(session and session.is_active)


def list_sessions(db: Session, user_id, current_token: Optional[str] = None) -> list[dict]:
    """
    Active sessions, most recent first. The caller's own session is flagged
    `current` by refresh token; without a token the most recent one is assumed.
    """
    sessions = _active_sessions(db, user_id)
    result = []
    for index, session in enumerate(sessions):
        result.append({
            "id": session.id,
            "device": session.device,
            "browser": session.browser,
            "location": session.location,
            "ip_address": session.ip_address,
            "last_active": session.last_active,
            "created_at": session.created_at,
            "current": session.token == current_token if current_token else index == 0,
        })
    return result


def revoke_session(db: Session, user_id, session_id, current_token: Optional[str] = None) -> None:
    """
    Ends one of the user's other sessions from the device list.
    The session the caller is using cannot be revoked here; that is logout.
    """
    parsed = parse_uuid(session_id)
    session = db.get(UserSession, parsed) if parsed else None
    if session is None or session.user_id != user_id:
        raise NotFoundException("Session")

    if not session.is_active:
        raise BadRequestException("Session is already revoked")

    if current_token and session.token == current_token:
        raise BadRequestException("Cannot revoke your current session")

    session.is_active = False
    db.commit()
    logger.info(f"Session {session.id} revoked by user {user_id}")
