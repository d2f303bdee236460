"""
Centralised custom exceptions.
Having them in one place means consistent error messages across the entire app
and easy global changes (e.g., changing status codes or adding logging).

Auth-flow failures derive from AuthException: besides the prose detail they
carry a stable machine-readable `code` plus optional extra fields
(requiresVerification, requiresTwoFactor, requiresForceLogin, ...) that the
client branches on. app.main registers the handler that renders them.
"""
from typing import Any, Optional
from fastapi import HTTPException, status


class CredentialsException(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenException(HTTPException):
    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFoundException(HTTPException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )


class ConflictException(HTTPException):
    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class BadRequestException(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


# ── Auth flow ─────────────────────────────────────────────────────────────────

class AuthException(HTTPException):
    code: str = "AUTH_ERROR"

    def __init__(
        self,
        status_code: int,
        detail: str,
        extra: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.extra = extra or {}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.detail, "code": self.code, **self.extra}


class InvalidCredentialsException(AuthException):
    """
    Wrong email, wrong password, deactivated account, or no password on file.
    Always the same response so accounts cannot be enumerated.
    """
    code = "INVALID_CREDENTIALS"

    def __init__(self):
        super().__init__(status.HTTP_401_UNAUTHORIZED, "Invalid email or password")


class EmailNotVerifiedException(AuthException):
    code = "EMAIL_NOT_VERIFIED"

    def __init__(self, email: str):
        super().__init__(
            status.HTTP_403_FORBIDDEN,
            "Please verify your email before logging in. "
            "Check your inbox for the verification code.",
            extra={"requiresVerification": True, "email": email},
        )


class TwoFactorRequiredException(AuthException):
    """
    Not a failure: password (or OAuth) check passed but the account demands
    a 2FA code before any session is issued. Rendered with status 200.
    """
    code = "TWO_FACTOR_REQUIRED"

    def __init__(self, email: str, force_login: bool = False):
        extra = {"requiresTwoFactor": True, "email": email}
        if force_login:
            extra["requiresForceLogin"] = True
        super().__init__(status.HTTP_200_OK, "Two-factor authentication code required", extra=extra)


class SessionConflictException(AuthException):
    code = "SESSION_CONFLICT"

    def __init__(self, existing_session: dict, new_device: dict, requires_two_factor: bool = False):
        extra = {
            "requiresForceLogin": True,
            "existingSession": existing_session,
            "newDevice": new_device,
        }
        if requires_two_factor:
            extra["requiresTwoFactor"] = True
        super().__init__(
            status.HTTP_409_CONFLICT,
            "You are already logged in on another device",
            extra=extra,
        )


class TokenExpiredException(AuthException):
    code = "TOKEN_EXPIRED"

    def __init__(self, detail: str = "Access token has expired"):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidTokenException(AuthException):
    code = "INVALID_TOKEN"

    def __init__(self, detail: str = "Invalid or expired token"):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class SessionRevokedException(AuthException):
    """Terminal: the client must go through a full login again."""
    code = "SESSION_REVOKED"

    def __init__(self, detail: str = "Session not found or has been revoked"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, detail)


class InvalidOTPException(AuthException):
    code = "INVALID_OTP"

    def __init__(self, detail: str = "Invalid or expired verification code", attempts_remaining: Optional[int] = None):
        extra = {}
        if attempts_remaining is not None:
            extra["attemptsRemaining"] = attempts_remaining
        super().__init__(status.HTTP_400_BAD_REQUEST, detail, extra=extra)


class OTPExpiredException(AuthException):
    code = "OTP_EXPIRED"

    def __init__(self):
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            "Verification code has expired. Please request a new one.",
        )


class TooManyOTPAttemptsException(AuthException):
    code = "TOO_MANY_OTP_ATTEMPTS"

    def __init__(self):
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            "Too many failed attempts. Please request a new code.",
        )


class AlreadyVerifiedException(AuthException):
    code = "ALREADY_VERIFIED"

    def __init__(self):
        super().__init__(status.HTTP_400_BAD_REQUEST, "Email is already verified. Please login.")


class InvalidResetTokenException(AuthException):
    code = "INVALID_RESET_TOKEN"

    def __init__(self):
        super().__init__(status.HTTP_400_BAD_REQUEST, "Invalid or expired reset token")


class ResetTokenExpiredException(AuthException):
    code = "RESET_TOKEN_EXPIRED"

    def __init__(self):
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            "Reset token has expired. Please request a new one.",
        )


class ResetTokenUsedException(AuthException):
    code = "RESET_TOKEN_USED"

    def __init__(self):
        super().__init__(status.HTTP_400_BAD_REQUEST, "Reset token has already been used")


class InvalidTwoFactorCodeException(AuthException):
    code = "INVALID_2FA_CODE"

    def __init__(self, detail: str = "Invalid 2FA code. Please try again."):
        super().__init__(status.HTTP_401_UNAUTHORIZED, detail)


class TwoFactorStateException(AuthException):
    """2FA operation not allowed in the current state (e.g. enable twice)."""
    code = "TWO_FACTOR_STATE"

    def __init__(self, detail: str):
        super().__init__(status.HTTP_400_BAD_REQUEST, detail)


class OAuthException(AuthException):
    code = "OAUTH_FAILED"

    def __init__(self, detail: str = "OAuth login failed", reason: str = "oauth_failed"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, detail, extra={"reason": reason})
