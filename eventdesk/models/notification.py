"""Notification model for transient user-facing messages.

Successful owner actions leave a short message here ("Attendee "Bob"
added successfully!"). Temporary ones are purged by the housekeeping job
after ``notification_ttl_seconds``.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: str = Field(index=True)
    message: str
    kind: str = Field(default="info")  # "info", "success" or "error"
    is_temporary: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
