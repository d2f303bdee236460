"""
Auth cookies.

Tokens never travel in response bodies: both are set as httpOnly cookies,
`secure` in production, sameSite=strict, path=/.
"""
from typing import Optional

from fastapi import Request, Response

from app.config import settings

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"
# Issued by the document viewer, cleared here on logout
PDF_ACCESS_COOKIE = "pdf_access_token"


def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "strict",
        "path": "/",
    }


def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        access_token,
        max_age=settings.access_token_expire_minutes * 60,
        **_cookie_options(),
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        refresh_token,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        **_cookie_options(),
    )


def clear_auth_cookies(response: Response) -> None:
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, PDF_ACCESS_COOKIE):
        response.delete_cookie(name, **_cookie_options())


def get_refresh_token(request: Request, fallback: Optional[str] = None) -> Optional[str]:
    """Cookie first; non-browser clients may send it in the body or X-Refresh-Token."""
    return (
        request.cookies.get(REFRESH_TOKEN_COOKIE)
        or fallback
        or request.headers.get("x-refresh-token")
    )
