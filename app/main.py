"""
Application entry point.

Run locally:
    uvicorn app.main:app --reload --port 8000

In Docker:
    CMD ["uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", "8000"]

API docs available at:
    http://localhost:8000/docs   (Swagger UI)
    http://localhost:8000/redoc  (ReDoc)
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.core.exceptions import AuthException
from app.core.rate_limiter import limiter
from app.routers import auth, oauth, sessions, two_factor, users, notifications, admin, websocket
from app.services.websocket_manager import ConnectionManager

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def auth_exception_handler(request: Request, exc: AuthException) -> JSONResponse:
    """
    Auth-flow errors carry a machine-readable code and signal flags
    (requiresTwoFactor, requiresForceLogin, ...) next to the usual detail.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=exc.headers,
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Alvarado Investment API",
        description=(
            "Authentication and session backend for the Alvarado Investment platform. "
            "Supports email/password registration with OTP verification, Google sign-in, "
            "TOTP two-factor authentication, single-device sessions with refresh-token "
            "rotation, password reset and real-time security notifications."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # ── Rate Limiter ──────────────────────────────────────────────────────────
    # Attach limiter to app state (required by slowapi)
    # Register the 429 handler so exceeded limits return proper JSON
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ── Auth errors ───────────────────────────────────────────────────────────
    app.add_exception_handler(AuthException, auth_exception_handler)

    # ── Notification push registry ────────────────────────────────────────────
    app.state.connection_manager = ConnectionManager()

    # ── CORS ──────────────────────────────────────────────────────────────────
    # Credentials are allowed because tokens travel in HttpOnly cookies.
    # CORS_ORIGINS in .env should only list the frontend domain in production.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ───────────────────────────────────────────────────────────────
    # Auth (public; no auth dependency inside the router itself)
    app.include_router(auth.router, prefix="/auth", tags=["Auth"])
    app.include_router(oauth.router, prefix="/auth", tags=["OAuth"])

    # Signed-in account management
    app.include_router(sessions.router, prefix="/sessions", tags=["Sessions"])
    app.include_router(two_factor.router, prefix="/2fa", tags=["Two-Factor"])
    app.include_router(users.router, prefix="/users", tags=["Users"])
    app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

    # Admin panel (all endpoints gated by get_current_admin dependency inside the router)
    app.include_router(admin.router, prefix="/admin", tags=["Admin"])

    # WebSocket (no prefix; ws:// connections use the full path /ws/notifications)
    app.include_router(websocket.router, tags=["WebSocket"])

    # ── Health Check ──────────────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Simple health check endpoint for load balancers and Docker health checks.
        Returns 200 if the application is running.
        """
        return {"status": "ok", "version": "1.0.0"}

    logger.info(f"{settings.app_name} API configured ({settings.environment})")
    return app


app = create_app()
