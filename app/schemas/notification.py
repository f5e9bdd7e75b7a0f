"""
schemas/notification.py
-----------------------
Pydantic models for stored notifications and admin broadcasts.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.notification import NotificationTargetType


class NotificationRead(BaseModel):
    id: int
    receiver_id: str
    content: str
    target_type: NotificationTargetType
    target_id: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class BroadcastCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class BroadcastResult(BaseModel):
    created_count: int
    delivered_count: int
