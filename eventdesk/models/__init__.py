from eventdesk.models.attendee import Attendee, AttendeeCreate, AttendeeUpdate
from eventdesk.models.event import Event, EventCreate, EventUpdate
from eventdesk.models.invitation import Invitation, InvitationCreate
from eventdesk.models.notification import Notification
from eventdesk.models.registration import Registration, RegistrationForm

# Collection name -> table model, for the change feed and snapshot loads
COLLECTIONS = {
    model.__tablename__: model
    for model in (Event, Attendee, Invitation, Registration, Notification)
}

__all__ = [
    "Attendee",
    "AttendeeCreate",
    "AttendeeUpdate",
    "COLLECTIONS",
    "Event",
    "EventCreate",
    "EventUpdate",
    "Invitation",
    "InvitationCreate",
    "Notification",
    "Registration",
    "RegistrationForm",
]
