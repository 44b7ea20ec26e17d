"""
User model. Passwords are stored as bcrypt hashes; OAuth-only accounts
have no password hash and carry their provider id instead.
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint

from eventhub.db.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    USER = "user"
    ORGANISATION = "organisation"
    ADMIN = "admin"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=True)
    google_id = Column(String(255), unique=True, nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    is_active = Column(Boolean, default=True, nullable=False)
    bio = Column(String(500), nullable=True)

    __table_args__ = (
        CheckConstraint("role IN ('user', 'organisation', 'admin')", name="check_user_role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
