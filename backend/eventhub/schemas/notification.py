"""
Pydantic schemas for persisted notifications.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from eventhub.schemas.common import PageMeta


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    related_event_id: Optional[int]
    related_application_id: Optional[int]
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(PageMeta):
    notifications: list[NotificationResponse]
    unread_count: int


class UnreadCount(BaseModel):
    count: int


class BulkUpdateResult(BaseModel):
    updated: int
