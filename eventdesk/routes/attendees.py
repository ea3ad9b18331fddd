"""Attendee routes for managing attendee lists and check-ins."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlmodel import Session, func, select

from eventdesk.core.database import get_session, write
from eventdesk.core.identity import Identity, get_identity
from eventdesk.core.ownership import get_owned
from eventdesk.live.views import search_attendees
from eventdesk.models import Attendee, AttendeeCreate, AttendeeUpdate, Event
from eventdesk.routes.notifications import notify

router = APIRouter(prefix="/attendees", tags=["attendees"])


@router.get("")
def list_attendees(
    event_id: UUID | None = None,
    q: str = "",
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    List the caller's attendees.

    Optionally narrowed to one event, and searched by name or email with
    ``q``. The response includes the checked-in count of the listed
    attendees.
    """
    statement = select(Attendee).where(Attendee.owner_id == identity.user_id)
    if event_id:
        statement = statement.where(Attendee.event_id == event_id)
    attendees = [a.model_dump(mode="json") for a in session.exec(statement.order_by(Attendee.created_at))]
    attendees = search_attendees(attendees, q)
    return {
        "attendees": attendees,
        "checked_in": sum(1 for a in attendees if a["attended"]),
    }


@router.post("", status_code=201)
def create_attendee(
    data: AttendeeCreate,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    Add an attendee to one of the caller's events.

    Clients showing an optimistic placeholder may send its id; the attendee
    is then stored under that id so the live echo reconciles with it.
    """

    def apply(s: Session) -> Attendee:
        get_owned(s, Event, data.event_id, identity, "Event")
        fields = data.model_dump(exclude_none=True)
        attendee = Attendee(**fields, owner_id=identity.user_id)
        s.add(attendee)
        notify(s, identity, f'Attendee "{attendee.name}" added successfully!')
        return attendee

    attendee = write(session, apply, "add attendee")
    session.refresh(attendee)
    return attendee


@router.put("/{attendee_id}")
def update_attendee(
    attendee_id: UUID,
    data: AttendeeUpdate,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Update the given fields of an attendee."""

    def apply(s: Session) -> Attendee:
        attendee = get_owned(s, Attendee, attendee_id, identity, "Attendee")
        attendee.sqlmodel_update(data.model_dump(exclude_unset=True))
        s.add(attendee)
        notify(s, identity, f'Attendee "{attendee.name}" updated successfully!')
        return attendee

    attendee = write(session, apply, "update attendee")
    session.refresh(attendee)
    return attendee


@router.delete("/{attendee_id}", status_code=204)
def delete_attendee(
    attendee_id: UUID,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Remove an attendee."""

    def apply(s: Session) -> None:
        attendee = get_owned(s, Attendee, attendee_id, identity, "Attendee")
        notify(s, identity, f'Attendee "{attendee.name}" deleted successfully!')
        s.delete(attendee)

    write(session, apply, "delete attendee")


@router.post("/{attendee_id}/check-in")
def toggle_check_in(
    attendee_id: UUID,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    Toggle an attendee's check-in.

    Flips ``attended`` and returns the new state together with the event's
    checked-in and total attendee counts.
    """

    def apply(s: Session) -> Attendee:
        attendee = get_owned(s, Attendee, attendee_id, identity, "Attendee")
        attendee.attended = not attendee.attended
        s.add(attendee)
        state = "attended" if attendee.attended else "not attended"
        notify(s, identity, f'Attendee "{attendee.name}" marked as {state}!')
        return attendee

    attendee = write(session, apply, "update check-in status")
    session.refresh(attendee)

    base = select(func.count()).select_from(Attendee).where(Attendee.event_id == attendee.event_id)
    checked_in = session.exec(base.where(Attendee.attended == True)).one()  # noqa: E712
    total = session.exec(base).one()
    return {
        "success": True,
        "attendee_id": str(attendee.id),
        "attended": attendee.attended,
        "checked_in_count": checked_in,
        "total_count": total,
    }
