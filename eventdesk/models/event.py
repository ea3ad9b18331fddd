"""Event model.

Events are the central entity: each one is owned by exactly one user and
every attendee, invitation and registration hangs off it. Deleting an
event removes its dependents as well.
"""

from datetime import UTC, datetime
from datetime import date as calendar_date
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from eventdesk.models.attendee import Attendee
    from eventdesk.models.invitation import Invitation
    from eventdesk.models.registration import Registration


class EventBase(SQLModel):
    name: str
    date: calendar_date
    time: str = ""  # "HH:MM", free-form as entered
    location: str = ""
    type: str = ""
    description: str | None = None


class Event(EventBase, table=True):
    """An event owned by a single user.

    Attributes:
        id: Unique identifier (UUID).
        owner_id: Identifier of the user who created the event. All queries
            filter on it.
        name: Display name.
        date: Day the event takes place.
        time: Start time as entered, may be empty.
        location: Where the event takes place.
        type: Free-form category used by reports (e.g. "Conference").
        description: Optional text rendered into invitation emails.
        created_at: When the event was created.
    """
    __tablename__ = "events"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: str = Field(index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationships
    attendees: list["Attendee"] = Relationship(back_populates="event", cascade_delete=True)
    invitations: list["Invitation"] = Relationship(back_populates="event", cascade_delete=True)
    registrations: list["Registration"] = Relationship(back_populates="event", cascade_delete=True)


class EventCreate(EventBase):
    pass


class EventUpdate(SQLModel):
    name: str | None = None
    date: calendar_date | None = None
    time: str | None = None
    location: str | None = None
    type: str | None = None
    description: str | None = None
