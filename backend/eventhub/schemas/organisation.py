"""
Pydantic schemas for organisations and their admin sets.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

from eventhub.models.organisation import OrganisationType
from eventhub.schemas.common import PageMeta
from eventhub.schemas.user import UserSummary


class SocialMedia(BaseModel):
    linkedin: Optional[str] = None
    facebook: Optional[str] = None
    twitter: Optional[str] = None
    instagram: Optional[str] = None


class OrganisationCreate(BaseModel):
    model_config = {"use_enum_values": True}

    name: str = Field(..., min_length=1, max_length=100)
    type: OrganisationType
    description: str = Field(..., min_length=1, max_length=1000)
    email: EmailStr
    website: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    logo: Optional[str] = Field(None, max_length=500)
    cover_image: Optional[str] = Field(None, max_length=500)
    social_media: SocialMedia = Field(default_factory=SocialMedia)
    admin_ids: list[int] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()


class OrganisationUpdate(BaseModel):
    model_config = {"use_enum_values": True}

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[OrganisationType] = None
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    email: Optional[EmailStr] = None
    website: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    logo: Optional[str] = Field(None, max_length=500)
    cover_image: Optional[str] = Field(None, max_length=500)
    social_media: Optional[SocialMedia] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value


class OrganisationResponse(BaseModel):
    id: int
    name: str
    type: OrganisationType
    description: str
    email: str
    website: Optional[str]
    phone: Optional[str]
    logo: Optional[str]
    cover_image: Optional[str]
    social_media: dict
    admins: list[UserSummary]
    created_at: datetime

    model_config = {"from_attributes": True}


class OrganisationListResponse(PageMeta):
    organisations: list[OrganisationResponse]


class AdminAssignment(BaseModel):
    user_id: int
