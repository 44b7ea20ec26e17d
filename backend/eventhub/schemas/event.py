"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, model_validator

from eventhub.db.base import as_utc
from eventhub.models.event import EventCategory, EventFormat, EventStatus


class EventCreate(BaseModel):
    model_config = {"use_enum_values": True}

    title: str = Field(..., min_length=1, max_length=150)
    description: str = Field(..., min_length=1, max_length=2000)
    organisation_id: int
    category: EventCategory
    event_type: EventFormat
    online_link: Optional[str] = Field(None, max_length=500)
    street: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    cover_image: Optional[str] = Field(None, max_length=500)
    images: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    start_date: datetime
    end_date: datetime
    registration_start_date: Optional[datetime] = None
    registration_end_date: datetime
    capacity: int = Field(..., ge=5, le=100000)
    is_free: bool = True
    price: float = Field(0, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    status: EventStatus = EventStatus.DRAFT.value
    requirements: Optional[str] = Field(None, max_length=1000)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, max_length=50)

    @model_validator(mode="after")
    def check_dates_and_price(self) -> "EventCreate":
        start, end = as_utc(self.start_date), as_utc(self.end_date)
        if end <= start:
            raise ValueError("End date must be after start date")
        if as_utc(self.registration_end_date) >= start:
            raise ValueError("Registration must close before the event starts")
        if self.price > 0:
            self.is_free = False
        return self


class EventUpdate(BaseModel):
    """Partial update; date ordering is checked against the merged event."""

    model_config = {"use_enum_values": True}

    title: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    category: Optional[EventCategory] = None
    event_type: Optional[EventFormat] = None
    online_link: Optional[str] = Field(None, max_length=500)
    street: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    cover_image: Optional[str] = Field(None, max_length=500)
    images: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    registration_start_date: Optional[datetime] = None
    registration_end_date: Optional[datetime] = None
    capacity: Optional[int] = Field(None, ge=5, le=100000)
    is_free: Optional[bool] = None
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    status: Optional[EventStatus] = None
    requirements: Optional[str] = Field(None, max_length=1000)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, max_length=50)


class EventResponse(BaseModel):
    id: int
    title: str
    description: str
    organisation_id: int
    category: str
    event_type: str
    online_link: Optional[str]
    street: Optional[str]
    address: Optional[str]
    city: Optional[str]
    cover_image: Optional[str]
    images: list[str]
    tags: list[str]
    start_date: datetime
    end_date: datetime
    registration_start_date: datetime
    registration_end_date: datetime
    capacity: int
    registered_count: int
    is_free: bool
    price: float
    currency: str
    status: str
    requirements: Optional[str]
    contact_email: Optional[str]
    contact_phone: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class EventSummary(BaseModel):
    id: int
    title: str
    start_date: datetime
    status: str
    price: float
    organisation_id: int

    model_config = {"from_attributes": True}
