"""
Pydantic schemas for event applications.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from eventhub.schemas.common import PageMeta
from eventhub.schemas.event import EventSummary
from eventhub.schemas.user import UserSummary


class ApplicationCreate(BaseModel):
    event_id: int
    message: Optional[str] = Field(None, max_length=500)


class ApplicationStatusUpdate(BaseModel):
    # Validated by the workflow so an unknown value is a 400, not a 422
    status: str
    rejection_reason: Optional[str] = Field(None, max_length=500)


class ApplicationResponse(BaseModel):
    id: int
    user_id: int
    event_id: int
    status: str
    message: Optional[str]
    rejection_reason: Optional[str]
    processed_by: Optional[int]
    processed_at: Optional[datetime]
    created_at: datetime
    user: Optional[UserSummary] = None
    event: Optional[EventSummary] = None

    model_config = {"from_attributes": True}


class ApplicationListResponse(PageMeta):
    applications: list[ApplicationResponse]


class ApplicationCancelResponse(BaseModel):
    message: str
    application_id: int
    outcome: str


class ApplicationStats(BaseModel):
    event_id: int
    total: int
    by_status: dict[str, int]
