from eventhub.schemas.user import UserCreate, UserResponse, UserLogin, Token, RoleUpdate, ProfileUpdate
from eventhub.schemas.organisation import OrganisationCreate, OrganisationUpdate, OrganisationResponse
from eventhub.schemas.event import EventCreate, EventUpdate, EventResponse
from eventhub.schemas.application import ApplicationCreate, ApplicationStatusUpdate, ApplicationResponse
from eventhub.schemas.notification import NotificationResponse, UnreadCount

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token", "RoleUpdate", "ProfileUpdate",
    "OrganisationCreate", "OrganisationUpdate", "OrganisationResponse",
    "EventCreate", "EventUpdate", "EventResponse",
    "ApplicationCreate", "ApplicationStatusUpdate", "ApplicationResponse",
    "NotificationResponse", "UnreadCount",
]
