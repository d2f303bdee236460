from pydantic import BaseModel, field_validator
from typing import Optional, List
from datetime import datetime


class SessionOut(BaseModel):
    id: str
    device: Optional[str] = None
    browser: Optional[str] = None
    location: Optional[str] = None
    ip_address: Optional[str] = None
    last_active: datetime
    created_at: Optional[datetime] = None
    current: bool

    @field_validator("id", mode="before")
    @classmethod
    def uuid_to_str(cls, v) -> str:
        return str(v)


class SessionListResponse(BaseModel):
    total: int
    sessions: List[SessionOut]
