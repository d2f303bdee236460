"""
Google OAuth: consent redirect, code exchange, identity linking, login tickets.

Flow:
  GET  /auth/google           → redirect to Google with a signed `state`
  GET  /auth/google/callback  → exchange code, link identity, store a one-time
                                login ticket, redirect to the frontend with it
  POST /auth/oauth/exchange   → ticket (+ 2FA code / force_login) → session

No token ever travels in a URL. The ticket is only consumed once a session
has been issued, so the frontend can re-submit it after a 2FA prompt or a
device conflict.

Identity resolution (link_oauth_identity):
  1. Account by (provider, provider_id). An account whose user is gone is
     deleted and treated as not found.
  2. User by email → link a new Account to it. If that user never verified
     the email, its password account, pending OTPs and sessions are dropped.
  3. Otherwise create User + Account, crediting a referral bonus when the
     consent request carried a valid referral code.
"""
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

import httpx
import jwt
from fastapi import BackgroundTasks
from jwt.exceptions import InvalidTokenError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.clock import utcnow, as_utc
from app.core.exceptions import (
    InvalidTwoFactorCodeException,
    OAuthException,
    TwoFactorRequiredException,
)
from app.models.oauth_ticket import OAuthLoginTicket
from app.models.otp import OTPRecord
from app.models.user import User
from app.services import session_service
from app.services.auth_service import credit_referral, record_login
from app.services.credential_service import (
    CREDENTIALS_PROVIDER,
    GOOGLE_PROVIDER,
    create_user_with_account,
    get_account,
    get_account_by_provider_identity,
    get_user_by_email,
    get_user_by_id,
    get_user_by_referral_code,
    link_account,
    normalize_email,
)
from app.services.device_service import DeviceContext
from app.services.session_service import IssuedSession
from app.services.two_factor_service import login_requires_two_factor, verify_login_code
from app.services.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_AVATAR_HOST = "googleusercontent.com"

OAUTH_TIMEOUT_SECONDS = 10.0
STATE_LIFETIME = timedelta(minutes=10)
LOGIN_TICKET_LIFETIME = timedelta(minutes=5)


@dataclass(frozen=True)
class OAuthIdentity:
    provider: str
    provider_id: str
    email: str
    email_verified: bool
    first_name: str = ""
    last_name: str = ""
    picture: Optional[str] = None


# ── Consent & state ───────────────────────────────────────────────────────────

def _require_google_config() -> None:
    if not (settings.google_client_id and settings.google_client_secret and settings.google_callback_url):
        raise OAuthException("Google sign-in is not configured", reason="oauth_not_configured")


def create_state(referral_code: Optional[str] = None) -> str:
    """Signed, short-lived `state`: CSRF protection that also carries the referral code."""
    now = utcnow()
    payload = {
        "type": "oauth_state",
        "nonce": uuid.uuid4().hex,
        "iat": now,
        "exp": now + STATE_LIFETIME,
    }
    if referral_code:
        payload["ref"] = referral_code
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.algorithm)


def read_state(state: Optional[str]) -> Optional[str]:
    """Returns the referral code carried by a valid state (or None)."""
    if not state:
        raise OAuthException("Missing OAuth state", reason="invalid_state")
    try:
        payload = jwt.decode(state, settings.jwt_secret, algorithms=[settings.algorithm])
    except InvalidTokenError:
        raise OAuthException("Invalid OAuth state", reason="invalid_state")
    if payload.get("type") != "oauth_state":
        raise OAuthException("Invalid OAuth state", reason="invalid_state")
    return payload.get("ref")


def google_authorize_url(referral_code: Optional[str] = None) -> str:
    _require_google_config()
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_callback_url,
        "response_type": "code",
        "scope": "openid email profile",
        "state": create_state(referral_code),
        "access_type": "online",
        "prompt": "select_account",
    }
    return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"


def parse_google_userinfo(userinfo: dict) -> OAuthIdentity:
    provider_id = userinfo.get("sub") or userinfo.get("id")
    email = userinfo.get("email")
    if not provider_id or not email:
        raise OAuthException("Google did not return an identity", reason="invalid_token")
    return OAuthIdentity(
        provider=GOOGLE_PROVIDER,
        provider_id=str(provider_id),
        email=normalize_email(email),
        email_verified=bool(userinfo.get("email_verified", False)),
        first_name=userinfo.get("given_name") or "",
        last_name=userinfo.get("family_name") or "",
        picture=userinfo.get("picture"),
    )


async def fetch_google_identity(code: str) -> OAuthIdentity:
    """Authorization code → access token → userinfo."""
    _require_google_config()
    try:
        async with httpx.AsyncClient(timeout=OAUTH_TIMEOUT_SECONDS, follow_redirects=False) as client:
            token_response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "code": code,
                    "redirect_uri": settings.google_callback_url,
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
            )
            token_response.raise_for_status()
            access_token = token_response.json().get("access_token")
            if not access_token:
                raise OAuthException("Google token exchange failed", reason="token_exchange_failed")

            userinfo_response = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            userinfo_response.raise_for_status()
            userinfo = userinfo_response.json()
    except httpx.HTTPStatusError as exc:
        logger.error(f"Google OAuth HTTP error {exc.response.status_code}: {exc}")
        raise OAuthException("Google token exchange failed", reason="token_exchange_failed")
    except (httpx.HTTPError, ValueError) as exc:
        logger.error(f"Google OAuth exchange error: {exc}")
        raise OAuthException("Google token exchange failed", reason="token_exchange_failed")

    if not isinstance(userinfo, dict):
        raise OAuthException("Google did not return an identity", reason="invalid_token")
    return parse_google_userinfo(userinfo)


# ── Identity linking ──────────────────────────────────────────────────────────

def has_custom_avatar(user: User) -> bool:
    """A photo not hosted by Google was uploaded deliberately; never overwrite it."""
    return bool(user.profile_photo) and GOOGLE_AVATAR_HOST not in user.profile_photo


def link_oauth_identity(
    db: Session,
    identity: OAuthIdentity,
    referral_code: Optional[str] = None,
    connections: Optional[ConnectionManager] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> User:
    """Resolves a provider identity to exactly one User, creating or linking as needed."""
    account = get_account_by_provider_identity(db, identity.provider, identity.provider_id)
    if account:
        user = get_user_by_id(db, account.user_id)
        if user:
            if identity.picture and not has_custom_avatar(user) and identity.picture != user.profile_photo:
                user.profile_photo = identity.picture
                db.commit()
                db.refresh(user)
            logger.info(f"{identity.provider} account found: {user.email}")
            return user

        logger.warning(
            f"Cleaning up orphaned {identity.provider} account {account.id} "
            f"for provider id {identity.provider_id}"
        )
        db.delete(account)
        db.commit()

    # Linking or creating by email is only safe when the provider vouches for it
    if not identity.email_verified:
        raise OAuthException("Your Google email address is not verified", reason="email_not_verified")

    user = get_user_by_email(db, identity.email)
    if user:
        if not user.email_verified:
            # Unverified local credentials never proved ownership of the inbox
            credentials = get_account(db, user.id, CREDENTIALS_PROVIDER)
            if credentials:
                db.delete(credentials)
            db.query(OTPRecord).filter(OTPRecord.email == user.email).delete(synchronize_session=False)
            session_service.invalidate_all_sessions(db, user.id)
            logger.warning(f"Dropped unverified credentials before linking {identity.provider}: {user.email}")
        link_account(db, user, identity.provider, identity.provider_id)
        if identity.picture and not user.profile_photo:
            user.profile_photo = identity.picture
        user.email_verified = True
        db.commit()
        db.refresh(user)
        logger.info(f"Linked {identity.provider} account to existing user: {user.email}")
        return user

    referrer = get_user_by_referral_code(db, referral_code) if referral_code else None
    if referral_code and not referrer:
        logger.info(f"Ignoring unknown referral code on {identity.provider} sign-up: {referral_code}")

    user = create_user_with_account(
        db,
        email=identity.email,
        provider=identity.provider,
        first_name=identity.first_name,
        last_name=identity.last_name,
        provider_id=identity.provider_id,
        profile_photo=identity.picture,
        email_verified=True,
        referred_by=referrer,
    )
    if referrer:
        credit_referral(db, user, connections, background_tasks)
    return user


# ── Login tickets ─────────────────────────────────────────────────────────────

def create_login_ticket(db: Session, user: User, provider: str) -> str:
    token = secrets.token_urlsafe(32)
    db.add(OAuthLoginTicket(
        token=token,
        user_id=user.id,
        provider=provider,
        expires_at=utcnow() + LOGIN_TICKET_LIFETIME,
    ))
    db.commit()
    return token


def exchange_login_ticket(
    db: Session,
    ticket: str,
    device: DeviceContext,
    code: Optional[str] = None,
    force: bool = False,
    connections: Optional[ConnectionManager] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> IssuedSession:
    """
    Turns a login ticket into a session, with the same 2FA and device-conflict
    signals as a password login.
    """
    record = db.query(OAuthLoginTicket).filter(OAuthLoginTicket.token == ticket).first()
    if not record:
        raise OAuthException("Invalid or expired login ticket", reason="invalid_ticket")

    if utcnow() > as_utc(record.expires_at):
        db.delete(record)
        db.commit()
        raise OAuthException("Login ticket has expired", reason="ticket_expired")

    user = get_user_by_id(db, record.user_id)
    if not user or not user.is_active:
        db.delete(record)
        db.commit()
        logger.warning(f"OAuth ticket exchange refused: user {record.user_id} missing or inactive")
        raise OAuthException("Invalid or expired login ticket", reason="invalid_ticket")

    two_factor = login_requires_two_factor(user)
    if two_factor:
        if not code:
            raise TwoFactorRequiredException(user.email, force_login=force)
        if not verify_login_code(db, user, code):
            logger.warning(f"OAuth login failed: invalid 2FA code - {user.email} ({device.ip_address})")
            raise InvalidTwoFactorCodeException()

    issued = session_service.open_session(db, user, device, force=force, requires_two_factor=two_factor)

    db.query(OAuthLoginTicket).filter(OAuthLoginTicket.token == ticket).delete(synchronize_session=False)
    db.commit()

    record_login(db, issued, device, connections, background_tasks)
    return issued
