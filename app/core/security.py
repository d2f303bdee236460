"""
Security utilities: password hashing and JWT token management.
Uses PyJWT (not python-jose); actively maintained, no known CVEs as of 2026.

Access and refresh tokens share one claims shape (TokenClaims) but are two
distinct operations with distinct secrets and lifetimes, so a refresh token
can never pass as an access token or vice versa.
"""
import uuid
from dataclasses import dataclass
from typing import Optional

import jwt
from jwt.exceptions import InvalidTokenError, ExpiredSignatureError
from passlib.context import CryptContext
from datetime import timedelta
from app.config import settings
from app.core.clock import utcnow

# ── Password Hashing ──────────────────────────────────────────────────────────
# bcrypt is the industry standard for password hashing.
# deprecated="auto" means passlib will auto-upgrade old hashes on next login.
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# ── Token errors ──────────────────────────────────────────────────────────────
# Callers need to tell these apart: an expired access token means "refresh",
# anything else means "log in again".

class TokenExpiredError(Exception):
    pass


class TokenInvalidError(Exception):
    pass


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None

    @classmethod
    def for_user(cls, user) -> "TokenClaims":
        return cls(
            user_id=str(user.id),
            email=user.email,
            name=user.display_name,
            picture=user.profile_photo or None,
        )


# ── JWT Token Creation ────────────────────────────────────────────────────────

def _encode(claims: TokenClaims, token_type: str, secret: str, lifetime: timedelta) -> str:
    """
    PyJWT 2.x note: jwt.encode() returns str directly; no need to call .decode().
    Always use timezone-aware datetimes to avoid PyJWT deprecation warnings.

    jti makes every token unique, even two signed for the same user in the
    same second (session tokens are a unique column).
    """
    now = utcnow()
    payload = {
        "userId": claims.user_id,
        "email": claims.email,
        "type": token_type,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + lifetime,
    }
    if claims.name:
        payload["name"] = claims.name
    if claims.picture:
        payload["picture"] = claims.picture
    return jwt.encode(payload, secret, algorithm=settings.algorithm)


def sign_access_token(claims: TokenClaims) -> str:
    """Short-lived access token (default 15 min)."""
    return _encode(
        claims,
        "access",
        settings.jwt_secret,
        timedelta(minutes=settings.access_token_expire_minutes),
    )


def sign_refresh_token(claims: TokenClaims) -> str:
    """Long-lived refresh token (default 7 days), rotated on every use."""
    return _encode(
        claims,
        "refresh",
        settings.jwt_refresh_secret,
        timedelta(days=settings.refresh_token_expire_days),
    )


def _decode(token: str, token_type: str, secret: str) -> TokenClaims:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.algorithm],
            options={"require": ["exp", "userId", "email"]},
        )
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except InvalidTokenError as exc:
        raise TokenInvalidError(str(exc))

    if payload.get("type") != token_type:
        raise TokenInvalidError(f"Expected a token of type '{token_type}'")

    return TokenClaims(
        user_id=payload["userId"],
        email=payload["email"],
        name=payload.get("name"),
        picture=payload.get("picture"),
    )


def verify_access_token(token: str) -> TokenClaims:
    """
    Decodes and validates an access token.
    Raises TokenExpiredError or TokenInvalidError.
    """
    return _decode(token, "access", settings.jwt_secret)


def verify_refresh_token(token: str) -> TokenClaims:
    """
    Decodes and validates a refresh token.
    Raises TokenExpiredError or TokenInvalidError.
    """
    return _decode(token, "refresh", settings.jwt_refresh_secret)
