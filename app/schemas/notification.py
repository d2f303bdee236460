from pydantic import BaseModel, field_validator, ConfigDict
from typing import List
from datetime import datetime


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    title: str
    message: str
    is_read: bool
    created_at: datetime

    @field_validator("id", mode="before")
    @classmethod
    def uuid_to_str(cls, v) -> str:
        return str(v)


class NotificationListResponse(BaseModel):
    total: int
    notifications: List[NotificationOut]
