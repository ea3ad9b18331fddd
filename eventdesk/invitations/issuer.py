"""Invitation issuance.

Two flows create invitation tokens:

    - :func:`issue_invitation` emails a registration link to one address.
    - :func:`issue_open_invitation` produces a shareable link plus a QR code
      for printing on an invitation card.

Both treat the token as atomic with its delivery artifact. The invitation is
committed first (so the token resolves as soon as anyone can see it), then
the email is sent or the QR code rendered. If that step fails the
invitation is deleted again and the error is re-raised, so no orphaned
tokens are left behind.
"""
import base64
import io
import logging
import secrets
from dataclasses import dataclass
from uuid import UUID

import qrcode
from sqlmodel import Session

from eventdesk.core.database import write
from eventdesk.core.errors import EventDeskError, NotificationDeliveryFailure
from eventdesk.core.identity import Identity
from eventdesk.core.ownership import get_owned
from eventdesk.invitations.links import event_registration_link, registration_link
from eventdesk.invitations.relay import InviteRelayClient
from eventdesk.models import Event, Invitation

logger = logging.getLogger(__name__)

TOKEN_BYTES = 24


@dataclass
class IssuedInvitation:
    token: str
    link: str


@dataclass
class OpenInvitation:
    token: str
    link: str
    qr_code: str  # PNG data URL


def new_token() -> str:
    """Cryptographically random, URL-safe token. Uniqueness is not checked."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def _create(session: Session, identity: Identity, event_id: UUID, email: str | None) -> str:
    token = new_token()

    def apply(s: Session) -> str:
        get_owned(s, Event, event_id, identity, "Event")
        s.add(Invitation(id=token, owner_id=identity.user_id, event_id=event_id, email=email))
        return token

    return write(session, apply, "create invitation")


def _discard(session: Session, token: str) -> None:
    """Compensating delete for an invitation whose delivery failed."""

    def apply(s: Session) -> None:
        invitation = s.get(Invitation, token)
        if invitation is not None:
            s.delete(invitation)

    try:
        write(session, apply, "discard invitation")
        logger.info(f"Discarded undelivered invitation {token[:8]}…")
    except EventDeskError as e:
        logger.error(f"Could not discard undelivered invitation {token[:8]}…: {e.message}")


def issue_invitation(
    session: Session,
    identity: Identity,
    event_id: UUID,
    email: str,
    relay: InviteRelayClient,
) -> IssuedInvitation:
    """Create an invitation for ``email`` and have the relay email it.

    Raises NotFound if the event does not exist or belongs to someone else,
    and NotificationDeliveryFailure (after deleting the invitation) if the
    relay could not deliver.
    """
    token = _create(session, identity, event_id, email)
    try:
        relay.send_invite(email, event_id, token)
    except NotificationDeliveryFailure:
        _discard(session, token)
        raise
    logger.info(f"Issued invitation for event {event_id} to {email}")
    return IssuedInvitation(token=token, link=registration_link(token))


def render_qr_data_url(link: str) -> str:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=1,
    )
    qr.add_data(link)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")
    return f"data:image/png;base64,{encoded}"


def issue_open_invitation(session: Session, identity: Identity, event_id: UUID) -> OpenInvitation:
    """Create an invitation not bound to an address, with a QR code of its link."""
    token = _create(session, identity, event_id, None)
    link = event_registration_link(token)
    try:
        qr_code = render_qr_data_url(link)
    except Exception as e:
        logger.error(f"QR rendering failed for event {event_id}: {e}")
        _discard(session, token)
        raise NotificationDeliveryFailure(f"Failed to generate invitation: {e}") from e
    logger.info(f"Issued open invitation for event {event_id}")
    return OpenInvitation(token=token, link=link, qr_code=qr_code)
