"""
Organisation model and its admin association.

One user may administer several organisations and one organisation may
have several admins; membership in `organisation_admins` is what lets an
organisation-role user manage events and resolve applications.
"""

import enum

from sqlalchemy import Column, Integer, String, Table, ForeignKey, JSON, CheckConstraint
from sqlalchemy.orm import relationship

from eventhub.db.base import Base, TimestampMixin


class OrganisationType(str, enum.Enum):
    UNIVERSITY = "university"
    COMPANY = "company"
    INSTITUTION = "institution"
    OTHER = "other"


organisation_admins = Table(
    "organisation_admins",
    Base.metadata,
    Column("organisation_id", Integer, ForeignKey("organisations.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class Organisation(Base, TimestampMixin):
    __tablename__ = "organisations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False, index=True)
    description = Column(String(1000), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    website = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    logo = Column(String(500), nullable=True)
    cover_image = Column(String(500), nullable=True)
    social_media = Column(JSON, nullable=False, default=dict)

    admins = relationship("User", secondary=organisation_admins, lazy="selectin")

    __table_args__ = (
        CheckConstraint(
            "type IN ('university', 'company', 'institution', 'other')",
            name="check_organisation_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<Organisation(id={self.id}, name={self.name})>"
