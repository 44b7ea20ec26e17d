from eventhub.models.user import User, UserRole
from eventhub.models.organisation import Organisation, OrganisationType, organisation_admins
from eventhub.models.event import Event, EventStatus, EventFormat, EventCategory
from eventhub.models.application import Application, ApplicationStatus
from eventhub.models.notification import Notification, NotificationType

__all__ = [
    "User", "UserRole",
    "Organisation", "OrganisationType", "organisation_admins",
    "Event", "EventStatus", "EventFormat", "EventCategory",
    "Application", "ApplicationStatus",
    "Notification", "NotificationType",
]
