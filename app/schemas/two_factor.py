from pydantic import BaseModel, field_validator
from typing import List


class TwoFactorCodeRequest(BaseModel):
    """A live authenticator code (or, for login only, a backup code)."""
    code: str

    @field_validator("code")
    @classmethod
    def code_present(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("2FA code is required")
        return v


class TwoFactorSetupResponse(BaseModel):
    secret: str
    otpauth_url: str
    qr_code: str  # data:image/png;base64,...
    message: str = "Scan the QR code with your authenticator app, then confirm with a code"


class BackupCodesResponse(BaseModel):
    backup_codes: List[str]
    message: str = "Store these backup codes somewhere safe. They will not be shown again."


class TwoFactorStatusResponse(BaseModel):
    enabled: bool
    require_on_login: bool
    backup_codes_remaining: int


class RequireLoginRequest(BaseModel):
    require: bool


class RequireLoginResponse(BaseModel):
    require_on_login: bool
