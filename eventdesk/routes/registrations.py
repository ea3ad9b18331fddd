"""Registration routes: token preview, registering, and the owner's registrant list."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session, select

from eventdesk.core.database import get_session
from eventdesk.core.errors import ValidationError
from eventdesk.core.identity import Identity, get_identity
from eventdesk.live.views import (
    VIEW_MODES,
    as_dicts,
    filter_registrants,
    merge_registrants,
    registration_counts,
)
from eventdesk.models import Attendee, Registration, RegistrationForm
from eventdesk.registrations.resolver import preview_invitation, resolve_and_register

router = APIRouter(tags=["registrations"])


@router.get("/register")
def get_invitation(token: str = "", session: Session = Depends(get_session)):
    """
    Look up the event behind an invitation token.

    This is the only lookup that needs no identity; the token alone grants
    it. Returns the event summary and the invited email, if any.
    """
    return preview_invitation(session, token)


@router.post("/register", status_code=201)
def register(
    form: RegistrationForm,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    Register the caller for the event behind ``form.token``.

    Returns the ticket id to show the registrant for check-in.
    """
    receipt = resolve_and_register(session, form.token, form, identity)
    return {
        "ticket_id": str(receipt.ticket_id),
        "event_id": str(receipt.event_id),
        "message": "Registration successful! Please save this ID for event check-in.",
    }


@router.get("/registrations")
def list_registrants(
    event_id: UUID | None = None,
    view: str = Query("all"),
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    List everyone registered for the caller's events.

    Registrations and attendees are merged into one entry per email, a
    registration taking precedence over an attendee record. ``view`` picks
    "all", "registrations" or "attendees"; ``counts`` holds the number of
    merged registrants per event.
    """
    if view not in VIEW_MODES:
        raise ValidationError(f"Unknown view mode: {view}")
    registrations = session.exec(
        select(Registration).where(Registration.owner_id == identity.user_id)
    ).all()
    attendees = session.exec(
        select(Attendee).where(Attendee.owner_id == identity.user_id)
    ).all()
    merged = merge_registrants(
        [r.model_dump(mode="json") for r in registrations],
        [a.model_dump(mode="json") for a in attendees],
    )
    selected = filter_registrants(merged, str(event_id) if event_id else None, view)
    return {
        "registrants": as_dicts(selected),
        "counts": registration_counts(merged),
    }
