"""
User schemas: public profile views.
"""
from pydantic import BaseModel, field_validator, ConfigDict
from typing import Optional
from datetime import datetime


class UserOut(BaseModel):
    """
    Public-safe user representation.
    Password hashes live on Account and 2FA material is never included:
    Pydantic only exposes fields declared here.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    profile_photo: Optional[str] = None
    email_verified: bool
    is_active: bool
    role: str
    balance: int
    referral_code: str
    two_factor_enabled: bool
    created_at: datetime

    # UUID → str conversion for JSON serialization
    @field_validator("id", mode="before")
    @classmethod
    def uuid_to_str(cls, v) -> str:
        return str(v)
