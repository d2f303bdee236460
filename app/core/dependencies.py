"""
FastAPI dependencies used across routers.
Keep this file lean; only auth/DB dependencies go here.
Business logic belongs in services/.
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.cookies import ACCESS_TOKEN_COOKIE
from app.core.security import verify_access_token, TokenExpiredError, TokenInvalidError
from app.core.exceptions import (
    CredentialsException,
    ForbiddenException,
    InvalidTokenException,
    TokenExpiredException,
)
from app.models.user import User
from app.services.credential_service import get_user_by_id

# tokenUrl must match the actual login endpoint path.
# auto_error=False: browsers authenticate with the access_token cookie instead.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def authenticate_access_token(db: Session, token: Optional[str]) -> User:
    """
    Validates an access token and returns the authenticated User.

    Checks performed (in order):
    1. Token is a valid JWT signed with the access secret and of type 'access'
       (expired → TOKEN_EXPIRED so the client refreshes, anything else → INVALID_TOKEN)
    2. 'userId' claim maps to a real user
    3. User account is active

    Corner case: is_active is checked on EVERY request, not just at login.
    A deactivated user's still-valid access token is rejected immediately.
    """
    if not token:
        raise CredentialsException("Not authenticated")

    try:
        claims = verify_access_token(token)
    except TokenExpiredError:
        raise TokenExpiredException()
    except TokenInvalidError:
        raise InvalidTokenException()

    user = get_user_by_id(db, claims.user_id)
    if user is None:
        raise InvalidTokenException()
    if not user.is_active:
        raise InvalidTokenException("Account is no longer active")
    return user


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Bearer header first, then the access_token cookie."""
    return authenticate_access_token(db, token or request.cookies.get(ACCESS_TOKEN_COOKIE))


def get_current_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """
    Requires the authenticated user to be an admin (admin or superadmin).
    Returns the User object so admin routes can access it normally.
    """
    if not current_user.is_admin:
        raise ForbiddenException("Admin access required")
    return current_user
