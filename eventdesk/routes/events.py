"""Event routes for creating and managing the caller's events."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from eventdesk.core.database import get_session, write
from eventdesk.core.identity import Identity, get_identity
from eventdesk.core.ownership import get_owned
from eventdesk.invitations.issuer import issue_open_invitation
from eventdesk.models import Event, EventCreate, EventUpdate
from eventdesk.routes.notifications import notify

router = APIRouter(prefix="/events", tags=["events"])


@router.get("")
def list_events(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """List the caller's events, soonest first."""
    statement = (
        select(Event)
        .where(Event.owner_id == identity.user_id)
        .order_by(Event.date, Event.time)
    )
    return session.exec(statement).all()


@router.post("", status_code=201)
def create_event(
    data: EventCreate,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Create an event owned by the caller."""

    def apply(s: Session) -> Event:
        event = Event.model_validate(data, update={"owner_id": identity.user_id})
        s.add(event)
        notify(s, identity, f'Event "{event.name}" added successfully!')
        return event

    event = write(session, apply, "add event")
    session.refresh(event)
    return event


@router.get("/{event_id}")
def get_event(
    event_id: UUID,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Return a single event."""
    return get_owned(session, Event, event_id, identity, "Event")


@router.put("/{event_id}")
def update_event(
    event_id: UUID,
    data: EventUpdate,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Update the given fields of an event."""

    def apply(s: Session) -> Event:
        event = get_owned(s, Event, event_id, identity, "Event")
        event.sqlmodel_update(data.model_dump(exclude_unset=True))
        s.add(event)
        notify(s, identity, f'Event "{event.name}" updated successfully!')
        return event

    event = write(session, apply, "update event")
    session.refresh(event)
    return event


@router.delete("/{event_id}", status_code=204)
def delete_event(
    event_id: UUID,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    Delete an event.

    Its attendees, invitations and registrations go with it so nothing is
    left pointing at a missing event.
    """

    def apply(s: Session) -> None:
        event = get_owned(s, Event, event_id, identity, "Event")
        s.delete(event)
        notify(s, identity, "Event deleted successfully!")

    write(session, apply, "delete event")


@router.post("/{event_id}/invitation-card")
def create_invitation_card(
    event_id: UUID,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    Generate a shareable invitation for an event.

    Returns the token, the event registration link and a QR code of the link
    as a PNG data URL, ready to print on an invitation card.
    """
    return issue_open_invitation(session, identity, event_id)
