"""Registration model.

A registration is written when someone resolves an invitation token. The
primary key doubles as the ticket id shown to the registrant. ``owner_id``
is the event owner so the record shows up in the owner's registrant list;
``registrant_id`` is the user who submitted the form.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from eventdesk.models.event import Event


class Registration(SQLModel, table=True):
    __tablename__ = "registrations"

    id: UUID = Field(default_factory=uuid4, primary_key=True)  # ticket id
    owner_id: str = Field(index=True)
    registrant_id: str = Field(index=True)
    event_id: UUID = Field(foreign_key="events.id", ondelete="CASCADE", index=True)
    name: str
    email: str
    phone: str
    token: str = Field(index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    event: Optional["Event"] = Relationship(back_populates="registrations")

    @property
    def ticket_id(self) -> UUID:
        return self.id


class RegistrationForm(SQLModel):
    """Contact details submitted with an invitation token."""
    token: str = ""
    name: str = ""
    email: str = ""
    phone: str = ""
