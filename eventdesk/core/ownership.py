"""Owner-scoped lookups.

Every record carries ``owner_id``; a user may only ever see records where it
equals their own identifier. A record owned by someone else is reported as
missing, not forbidden.
"""
from sqlmodel import Session

from eventdesk.core.errors import NotFound
from eventdesk.core.identity import Identity


def get_owned(session: Session, model, record_id, identity: Identity, label: str | None = None):
    """Fetch ``model`` by primary key, raising NotFound unless ``identity`` owns it."""
    label = label or model.__name__
    record = session.get(model, record_id)
    if record is None or record.owner_id != identity.user_id:
        raise NotFound(f"{label} not found")
    return record
