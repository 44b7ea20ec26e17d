"""
Application model: a user's registration for an event.

Key design decisions:
- Partial unique index on (user_id, event_id) for non-cancelled rows: at most
  one live application per pair, while cancelled (archived) rows never block
  re-applying
- `processed_by` / `processed_at` record who resolved a pending application
- Composite indexes back the accepted-count and per-user daily-count queries
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint, text
from sqlalchemy.orm import relationship

from eventhub.db.base import Base, TimestampMixin


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


CANCELLABLE_STATUSES = (ApplicationStatus.PENDING.value, ApplicationStatus.ACCEPTED.value)
RESOLUTION_STATUSES = (ApplicationStatus.ACCEPTED.value, ApplicationStatus.REJECTED.value)


class Application(Base, TimestampMixin):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=ApplicationStatus.PENDING.value)
    message = Column(String(500), nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", foreign_keys=[user_id], lazy="selectin")
    event = relationship("Event", lazy="selectin")

    __table_args__ = (
        Index(
            "uq_applications_active_user_event",
            "user_id",
            "event_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("ix_applications_event_status", "event_id", "status"),
        Index("ix_applications_user_created", "user_id", "created_at"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'cancelled')",
            name="check_application_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, user={self.user_id}, event={self.event_id}, status={self.status})>"
