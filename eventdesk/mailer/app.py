"""Invitation email relay.

A small stateless service that turns ``{email, eventId, token}`` into an
invitation email. It loads the event to fill in the message; a missing event
aborts with 404 and nothing is sent.

Run separately from the main API::

    uvicorn eventdesk.mailer.app:app --port 3000
"""
import logging
import smtplib
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field
from sqlmodel import Session

from eventdesk.core.database import get_session
from eventdesk.invitations.links import registration_link
from eventdesk.mailer.smtp import render_invite, send_mail
from eventdesk.models import Event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["relay"])


class InviteRequest(BaseModel):
    email: str
    event_id: UUID = Field(alias="eventId")
    token: str


@router.post("/send-invite", response_class=PlainTextResponse)
def send_invite(payload: InviteRequest, session: Session = Depends(get_session)):
    """
    Email an invitation link.

    Returns 404 without sending anything when the event does not exist, and
    500 when the mail server refuses or cannot be reached.
    """
    event = session.get(Event, payload.event_id)
    if not event:
        logger.warning(f"Invite for unknown event {payload.event_id} not sent")
        raise HTTPException(status_code=404, detail="Event not found")

    subject, body = render_invite(event, registration_link(payload.token))
    try:
        send_mail(payload.email, subject, body)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Error sending invite to {payload.email}: {e}")
        raise HTTPException(status_code=500, detail="Failed to send invite.") from e

    return "Invite sent successfully!"


app = FastAPI(title="EventDesk Mail Relay", version="0.1.0")
app.include_router(router)
