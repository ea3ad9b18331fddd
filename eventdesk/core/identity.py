"""Caller identity forwarded by the upstream identity provider.

Authentication happens before a request reaches this service. The gateway
forwards the authenticated user's stable identifier in a header (see
``Settings.identity_header``). Every owner-scoped operation receives the
resulting :class:`Identity` explicitly instead of reading a global.
"""
from dataclasses import dataclass

from fastapi import Request

from eventdesk.core.config import settings
from eventdesk.core.errors import NotAuthenticated


@dataclass(frozen=True)
class Identity:
    """The authenticated user on whose behalf an operation runs."""
    user_id: str


def identity_from_headers(headers) -> Identity:
    user_id = (headers.get(settings.identity_header) or "").strip()
    if not user_id:
        raise NotAuthenticated("User not authenticated. Please log in.")
    return Identity(user_id=user_id)


def get_identity(request: Request) -> Identity:
    """Dependency resolving the caller's identity for HTTP routes."""
    return identity_from_headers(request.headers)
