from app.schemas.auth import (
    RegisterRequest, VerifyOTPRequest, ResendOTPRequest, LoginRequest,
    VerifyTwoFactorLoginRequest, ForgotPasswordRequest, ResetPasswordRequest,
    RefreshTokenRequest, OAuthExchangeRequest, MessageResponse, RegisterResponse,
    AuthResponse, RefreshResponse, ValidateSessionResponse,
)
from app.schemas.user import UserOut
from app.schemas.session import SessionOut, SessionListResponse
from app.schemas.two_factor import (
    TwoFactorCodeRequest, TwoFactorSetupResponse, BackupCodesResponse,
    TwoFactorStatusResponse, RequireLoginRequest, RequireLoginResponse,
)
from app.schemas.notification import NotificationOut, NotificationListResponse
from app.schemas.admin import UserStatusResponse, AuditLogOut, AuditLogListResponse
