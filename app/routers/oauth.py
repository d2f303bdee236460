"""
OAuth router: Google sign-in.

  GET  /auth/google?referral_code=...  → 302 to Google consent
  GET  /auth/google/callback           → 302 to {FRONTEND_URL}/auth/callback?ticket=...
                                         or {FRONTEND_URL}/signin?error=<reason>
  POST /auth/oauth/exchange            → ticket (+ code / force_login) → session cookies

The exchange answers exactly like /auth/login: 2FA prompt, device conflict,
or signed in.
"""
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, BackgroundTasks, Query, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.core.exceptions import OAuthException
from app.core.rate_limiter import limiter
from app.routers.auth import signed_in
from app.schemas.auth import OAuthExchangeRequest, AuthResponse
from app.services import oauth_service
from app.services.device_service import build_device_context
from app.services.websocket_manager import get_connection_manager

logger = logging.getLogger(__name__)

router = APIRouter()


def _frontend_redirect(path: str, **params) -> RedirectResponse:
    return RedirectResponse(
        f"{settings.frontend_base_url}{path}?{urlencode(params)}",
        status_code=302,
    )


@router.get("/google")
def google_login(referral_code: Optional[str] = Query(None)):
    """Redirects to Google's consent screen. The referral code rides along in `state`."""
    return RedirectResponse(oauth_service.google_authorize_url(referral_code), status_code=302)


@router.get("/google/callback")
async def google_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """
    Exchanges the authorization code, resolves the Google identity to a user
    and hands the frontend a one-time login ticket. Failures redirect to the
    sign-in page with a reason instead of rendering JSON.
    """
    if error or not code:
        return _frontend_redirect("/signin", error=error or "missing_code")

    try:
        referral_code = oauth_service.read_state(state)
        identity = await oauth_service.fetch_google_identity(code)
        user = oauth_service.link_oauth_identity(
            db,
            identity,
            referral_code=referral_code,
            connections=get_connection_manager(request),
            background_tasks=background_tasks,
        )
        if not user.is_active:
            raise OAuthException("Account is deactivated", reason="account_inactive")
        ticket = oauth_service.create_login_ticket(db, user, identity.provider)
    except OAuthException as exc:
        logger.warning(f"Google OAuth callback failed: {exc.detail}")
        return _frontend_redirect("/signin", error=exc.extra.get("reason", "oauth_failed"))

    return _frontend_redirect("/auth/callback", ticket=ticket)


@router.post("/oauth/exchange", response_model=AuthResponse)
@limiter.limit("10/minute")
async def exchange_ticket(
    request: Request,
    response: Response,
    body: OAuthExchangeRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    device = await build_device_context(request)
    issued = oauth_service.exchange_login_ticket(
        db,
        ticket=body.ticket,
        device=device,
        code=body.code,
        force=body.force_login,
        connections=get_connection_manager(request),
        background_tasks=background_tasks,
    )
    return signed_in(response, issued, "Authentication successful")
