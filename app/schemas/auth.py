"""
Auth schemas: request bodies and responses for registration, login, OTP, 2FA login,
token refresh, password reset and the OAuth ticket exchange.

Every email is normalised (trimmed, lowercased) here, at the edge, and again
inside the services.
"""
from pydantic import BaseModel, EmailStr, field_validator
from typing import Optional

from app.schemas.user import UserOut


def _normalize_email(v):
    return v.strip().lower() if isinstance(v, str) else v


def _password_strong(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters")
    return v


class EmailRequest(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return _normalize_email(v)


class RegisterRequest(EmailRequest):
    password: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    referral_code: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_strong(cls, v: str) -> str:
        return _password_strong(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def name_present(cls, v: str) -> str:
        v = v.strip()
        if not v or len(v) > 100:
            raise ValueError("Name must be between 1 and 100 characters")
        return v

    @field_validator("referral_code")
    @classmethod
    def blank_referral_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


class VerifyOTPRequest(EmailRequest):
    otp: str

    @field_validator("otp")
    @classmethod
    def otp_format(cls, v: str) -> str:
        v = v.strip()
        if len(v) != 6 or not v.isdigit():
            raise ValueError("OTP must be a 6-digit code")
        return v


class ResendOTPRequest(EmailRequest):
    pass


class LoginRequest(EmailRequest):
    password: str


class VerifyTwoFactorLoginRequest(EmailRequest):
    password: str
    code: str
    force_login: bool = False


class ForgotPasswordRequest(EmailRequest):
    pass


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_strong(cls, v: str) -> str:
        return _password_strong(v)


class RefreshTokenRequest(BaseModel):
    """Browsers send the refresh token as a cookie; other clients may put it here."""
    refresh_token: Optional[str] = None


class OAuthExchangeRequest(BaseModel):
    ticket: str
    code: Optional[str] = None
    force_login: bool = False


class MessageResponse(BaseModel):
    message: str


class RegisterResponse(BaseModel):
    email: str
    message: str = "Please check your email for the verification code"


class AuthResponse(BaseModel):
    """Successful sign-in. The tokens themselves are in httpOnly cookies."""
    user: UserOut
    sessions_invalidated: int = 0
    message: str = "Login successful"


class RefreshResponse(BaseModel):
    message: str = "Token refreshed"


class ValidateSessionResponse(BaseModel):
    valid: bool
    check_interval: int
