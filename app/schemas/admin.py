from pydantic import BaseModel, field_validator, ConfigDict
from typing import Optional, List
from datetime import datetime

from app.schemas.user import UserOut


class UserStatusResponse(BaseModel):
    message: str
    user: UserOut
    sessions_revoked: int = 0


class AuditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    admin_id: Optional[str] = None
    action: str
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    details: Optional[dict] = None
    created_at: datetime

    @field_validator("id", "admin_id", mode="before")
    @classmethod
    def uuid_to_str(cls, v) -> Optional[str]:
        if v is None:
            return None
        return str(v)


class AuditLogListResponse(BaseModel):
    total: int
    page: int
    limit: int
    logs: List[AuditLogOut]
