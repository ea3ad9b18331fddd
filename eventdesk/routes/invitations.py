"""Invitation routes."""
import logging

from fastapi import APIRouter, Depends
from sqlmodel import Session

from eventdesk.core.database import get_session, write
from eventdesk.core.errors import StoreWriteFailure
from eventdesk.core.identity import Identity, get_identity
from eventdesk.invitations.issuer import issue_invitation
from eventdesk.invitations.relay import InviteRelayClient, get_relay
from eventdesk.models import InvitationCreate
from eventdesk.routes.notifications import notify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invitations", tags=["invitations"])


@router.post("", status_code=201)
def send_invitation(
    data: InvitationCreate,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
    relay: InviteRelayClient = Depends(get_relay),
):
    """
    Email an invitation to register for one of the caller's events.

    Returns the token and registration link. If the email cannot be
    delivered the invitation is withdrawn and 502 is returned.
    """
    issued = issue_invitation(session, identity, data.event_id, data.email, relay)
    try:
        write(session, lambda s: notify(s, identity, f"Invitation sent to {data.email}!"), "record notification")
    except StoreWriteFailure as e:
        # The invitation is stored and sent; only the toast is lost
        logger.warning(f"Invitation to {data.email} sent but not announced: {e.message}")
    return issued
