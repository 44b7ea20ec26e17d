"""
Event model with capacity tracking.

Key design decisions:
- `registered_count` is the number of accepted applications, kept in step by
  the application workflow with conditional updates
  (`WHERE registered_count < capacity`) so acceptance can never overshoot
- `version` is bumped on every counter change; it is internal and hidden
  from API projections
- Index on `start_date` for upcoming-event listings, on (organisation, status)
  for organisation dashboards
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey, JSON, Index, CheckConstraint,
)

from eventhub.db.base import Base, TimestampMixin, utcnow


class EventStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EventFormat(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    HYBRID = "hybrid"


class EventCategory(str, enum.Enum):
    WORKSHOP = "workshop"
    SEMINAR = "seminar"
    CONFERENCE = "conference"
    WEBINAR = "webinar"
    HACKATHON = "hackathon"
    CAREER_FAIR = "career-fair"
    NETWORKING = "networking"
    COMPETITION = "competition"
    CULTURAL = "cultural"
    SPORTS = "sports"
    OTHER = "other"


# Allowed status moves; re-setting the current status is always accepted.
STATUS_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.DRAFT: frozenset({EventStatus.PUBLISHED, EventStatus.CANCELLED}),
    EventStatus.PUBLISHED: frozenset({EventStatus.ONGOING, EventStatus.CANCELLED}),
    EventStatus.ONGOING: frozenset({EventStatus.COMPLETED, EventStatus.CANCELLED}),
    EventStatus.COMPLETED: frozenset(),
    EventStatus.CANCELLED: frozenset(),
}


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(150), nullable=False)
    description = Column(String(2000), nullable=False)
    organisation_id = Column(Integer, ForeignKey("organisations.id"), nullable=False, index=True)
    category = Column(String(30), nullable=False)
    event_type = Column(String(20), nullable=False)

    online_link = Column(String(500), nullable=True)
    street = Column(String(255), nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)

    cover_image = Column(String(500), nullable=True)
    images = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list)

    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    registration_start_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    registration_end_date = Column(DateTime(timezone=True), nullable=False)

    capacity = Column(Integer, nullable=False)
    registered_count = Column(Integer, nullable=False, default=0)

    is_free = Column(Boolean, nullable=False, default=True)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")

    status = Column(String(20), nullable=False, default=EventStatus.DRAFT.value)
    requirements = Column(String(1000), nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(50), nullable=True)

    # Optimistic concurrency counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("capacity >= 5", name="check_event_capacity_min"),
        CheckConstraint("registered_count >= 0", name="check_registered_count_non_negative"),
        CheckConstraint("registered_count <= capacity", name="check_registered_lte_capacity"),
        CheckConstraint("price >= 0", name="check_event_price_non_negative"),
        CheckConstraint("end_date > start_date", name="check_event_dates"),
        CheckConstraint(
            "status IN ('draft', 'published', 'ongoing', 'completed', 'cancelled')",
            name="check_event_status",
        ),
        CheckConstraint("event_type IN ('online', 'offline', 'hybrid')", name="check_event_type"),
        Index("ix_events_start_date", "start_date"),
        Index("ix_events_organisation_status", "organisation_id", "status"),
    )

    @property
    def is_paid(self) -> bool:
        return bool(self.price and self.price > 0)

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, registered={self.registered_count}/{self.capacity})>"
