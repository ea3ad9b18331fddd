"""Attendee model for tracking event participants.

Attendees are added by the event owner directly (as opposed to
registrations, which come in through invitation links). Checking an
attendee in flips ``attended``.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from pydantic import field_validator
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from eventdesk.models.event import Event


def normalize_email(value: str) -> str:
    value = value.strip()
    if "@" not in value:
        raise ValueError("Invalid email address")
    return value


class AttendeeBase(SQLModel):
    name: str
    email: str
    attended: bool = False


class Attendee(AttendeeBase, table=True):
    """A person on an event's attendee list.

    Attributes:
        id: Unique identifier (UUID).
        owner_id: Owner of the parent event.
        event_id: Foreign key to the parent Event.
        name: Display name.
        email: Contact address; registrants are de-duplicated on it.
        attended: Whether the attendee has checked in.
        created_at: When the attendee was added.
        event: Reference to the parent Event object.
    """
    __tablename__ = "attendees"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: str = Field(index=True)
    event_id: UUID = Field(foreign_key="events.id", ondelete="CASCADE", index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationship
    event: Optional["Event"] = Relationship(back_populates="attendees")


class AttendeeCreate(AttendeeBase):
    event_id: UUID
    # Lets a client reserve the id of its optimistic placeholder
    id: UUID | None = None

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return normalize_email(value)


class AttendeeUpdate(SQLModel):
    name: str | None = None
    email: str | None = None
    attended: bool | None = None

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str | None) -> str | None:
        return None if value is None else normalize_email(value)
