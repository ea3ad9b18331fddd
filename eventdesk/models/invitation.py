"""Invitation model.

The token is the primary key. Email invitations carry the invitee's
address; open invitations (shared as a link or QR code) leave it empty.
``consumed_at`` is stamped when a registration resolves the token under the
``single_use`` policy.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from pydantic import field_validator
from sqlmodel import Field, Relationship, SQLModel

from eventdesk.models.attendee import normalize_email

if TYPE_CHECKING:
    from eventdesk.models.event import Event


class Invitation(SQLModel, table=True):
    __tablename__ = "invitations"

    id: str = Field(primary_key=True)  # the token
    owner_id: str = Field(index=True)
    event_id: UUID = Field(foreign_key="events.id", ondelete="CASCADE", index=True)
    email: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    consumed_at: datetime | None = None

    event: Optional["Event"] = Relationship(back_populates="invitations")

    @property
    def token(self) -> str:
        return self.id


class InvitationCreate(SQLModel):
    event_id: UUID
    email: str

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return normalize_email(value)
