"""Notification routes and the helper actions use to leave messages."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from eventdesk.core.database import get_session, write
from eventdesk.core.identity import Identity, get_identity
from eventdesk.core.ownership import get_owned
from eventdesk.models import Notification

router = APIRouter(prefix="/notifications", tags=["notifications"])


def notify(session: Session, identity: Identity, message: str, kind: str = "success") -> None:
    """Stage a temporary notification; it is committed with the caller's write."""
    session.add(Notification(owner_id=identity.user_id, message=message, kind=kind))


@router.get("")
def list_notifications(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """List the caller's notifications, newest first."""
    statement = (
        select(Notification)
        .where(Notification.owner_id == identity.user_id)
        .order_by(Notification.created_at.desc())
    )
    return session.exec(statement).all()


@router.delete("/{notification_id}", status_code=204)
def dismiss_notification(
    notification_id: UUID,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Dismiss one of the caller's notifications."""

    def apply(s: Session) -> None:
        s.delete(get_owned(s, Notification, notification_id, identity, "Notification"))

    write(session, apply, "dismiss notification")
