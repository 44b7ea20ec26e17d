"""
Notification model. Rows are the source of truth; the live socket push is
only a latency optimisation on top of them.
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Index, CheckConstraint

from eventhub.db.base import Base, TimestampMixin


class NotificationType(str, enum.Enum):
    NEW_EVENT = "new_event"
    APPLICATION_RECEIVED = "application_received"
    APPLICATION_ACCEPTED = "application_accepted"
    APPLICATION_REJECTED = "application_rejected"


class Notification(Base, TimestampMixin):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(String(500), nullable=False)
    related_event_id = Column(Integer, ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    related_application_id = Column(Integer, ForeignKey("applications.id", ondelete="SET NULL"), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_notifications_recipient_read_created", "recipient_id", "is_read", "created_at"),
        CheckConstraint(
            "type IN ('new_event', 'application_received', 'application_accepted', 'application_rejected')",
            name="check_notification_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, recipient={self.recipient_id}, type={self.type})>"
