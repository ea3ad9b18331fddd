"""Deep links embedding invitation tokens."""
from urllib.parse import urlencode

from eventdesk.core.config import settings


def _link(path: str, token: str, base_url: str | None = None) -> str:
    base = (base_url or settings.base_url).rstrip("/")
    return f"{base}{path}?{urlencode({'token': token})}"


def registration_link(token: str, base_url: str | None = None) -> str:
    """Link sent in invitation emails."""
    return _link("/register", token, base_url)


def event_registration_link(token: str, base_url: str | None = None) -> str:
    """Event-specific registration link used for shareable invitations and QR codes."""
    return _link("/event-register", token, base_url)
