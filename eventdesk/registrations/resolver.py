"""Registration through invitation tokens.

The token lookup is the one anonymous query in the system: anyone holding
a link may preview the invitation. Registering requires an authenticated
identity, which is recorded as the registrant.

Whether a token may be used more than once is the ``invite_token_policy``
setting. Under ``single_use`` the invitation is stamped ``consumed_at`` in
the same commit that writes the registration, and later attempts fail with
TokenAlreadyUsed. Under ``multi_use`` tokens are never consumed.
"""
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlmodel import Session

from eventdesk.core.config import settings
from eventdesk.core.database import write
from eventdesk.core.errors import NotFound, TokenAlreadyUsed, ValidationError
from eventdesk.core.identity import Identity
from eventdesk.models import Event, Invitation, Registration, RegistrationForm

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "email", "phone")


@dataclass
class InvitationPreview:
    token: str
    email: str | None
    event_id: str
    event_name: str
    date: str
    time: str
    location: str
    type: str
    consumed: bool


@dataclass
class RegistrationReceipt:
    ticket_id: UUID
    event_id: UUID


def _resolve(session: Session, token: str) -> tuple[Invitation, Event]:
    if not token or not token.strip():
        raise ValidationError("Invalid or missing invitation token.")
    invitation = session.get(Invitation, token.strip())
    if invitation is None:
        raise NotFound("Invalid invitation token.")
    event = session.get(Event, invitation.event_id)
    if event is None:
        raise NotFound(f"Event not found for event ID: {invitation.event_id}")
    return invitation, event


def _consume(session: Session, invitation: Invitation) -> None:
    """Stamp ``consumed_at`` unless another registration got there first.

    The check and the stamp are one conditional UPDATE, so two concurrent
    registrations cannot both consume the same token.
    """
    if invitation.consumed_at is not None:
        raise TokenAlreadyUsed("This invitation has already been used.")
    statement = (
        update(Invitation)
        .where(Invitation.id == invitation.id)
        .where(Invitation.consumed_at.is_(None))
        .values(consumed_at=datetime.now(UTC))
    )
    if session.connection().execute(statement).rowcount != 1:
        raise TokenAlreadyUsed("This invitation has already been used.")


def preview_invitation(session: Session, token: str) -> InvitationPreview:
    """Resolve a token to the event it invites to, without writing anything."""
    invitation, event = _resolve(session, token)
    return InvitationPreview(
        token=invitation.id,
        email=invitation.email,
        event_id=str(event.id),
        event_name=event.name,
        date=event.date.isoformat(),
        time=event.time,
        location=event.location,
        type=event.type,
        consumed=invitation.consumed_at is not None,
    )


def resolve_and_register(
    session: Session,
    token: str,
    form: RegistrationForm,
    identity: Identity,
    policy: str | None = None,
) -> RegistrationReceipt:
    """Register ``identity`` for the event behind ``token``.

    Raises ValidationError for a blank token or field, NotFound for an
    unknown token or a missing event, TokenAlreadyUsed under the single-use
    policy, and StoreWriteFailure if the write does not go through. Nothing
    is written unless the whole registration succeeds.
    """
    policy = policy or settings.invite_token_policy
    missing = [name for name in REQUIRED_FIELDS if not (getattr(form, name) or "").strip()]
    if missing:
        raise ValidationError(
            "Missing required data. Please try again.", {"missing": missing}
        )
    if "@" not in form.email:
        raise ValidationError("Invalid email address.")

    ticket_id = uuid4()

    def apply(s: Session) -> RegistrationReceipt:
        invitation, event = _resolve(s, token)
        if policy == "single_use":
            _consume(s, invitation)
        s.add(Registration(
            id=ticket_id,
            owner_id=event.owner_id,
            registrant_id=identity.user_id,
            event_id=event.id,
            name=form.name.strip(),
            email=form.email.strip(),
            phone=form.phone.strip(),
            token=invitation.id,
        ))
        return RegistrationReceipt(ticket_id=ticket_id, event_id=event.id)

    receipt = write(session, apply, "register")
    logger.info(f"Registered {identity.user_id} for event {receipt.event_id} (ticket {ticket_id})")
    return receipt
