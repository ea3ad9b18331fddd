"""HTTP client for the outbound email relay."""
import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from eventdesk.core.config import settings
from eventdesk.core.errors import NotificationDeliveryFailure

logger = logging.getLogger(__name__)


class InviteRelayClient:
    """Asks the relay service to email an invitation link.

    One operation, :meth:`send_invite`, POSTs ``{email, eventId, token}`` as
    JSON. Any 2xx response is success. Connection errors and 502/503/504
    responses are retried with backoff. Read errors and read timeouts are
    not retried, since the relay may already have sent the email. Everything
    else is reported at once as NotificationDeliveryFailure.
    """

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        retries: int | None = None,
        session: requests.Session | None = None,
    ):
        self.url = url or settings.relay_url
        self.timeout = settings.relay_timeout_seconds if timeout is None else timeout
        retries = settings.relay_retries if retries is None else retries
        self.session = session or requests.Session()
        retry = Retry(
            total=retries,
            # Only failures before the relay saw the request are retried, so a
            # slow response never sends the same invitation twice
            read=0,
            other=0,
            backoff_factor=0.5,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset({"POST"}),
            raise_on_status=False,
        )
        self.session.mount("http://", HTTPAdapter(max_retries=retry))
        self.session.mount("https://", HTTPAdapter(max_retries=retry))

    def send_invite(self, email: str, event_id, token: str) -> None:
        payload = {"email": email, "eventId": str(event_id), "token": token}
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Relay unreachable for invite to {email}: {e}")
            raise NotificationDeliveryFailure(f"Failed to send invitation: {e}") from e

        if not 200 <= response.status_code < 300:
            detail = response.text.strip() or response.reason
            logger.error(f"Relay rejected invite to {email}: {response.status_code} {detail}")
            raise NotificationDeliveryFailure(
                f"Failed to send invitation: {response.status_code} {detail}"
            )
        logger.info(f"Invitation email for event {event_id} handed to relay ({email})")


def get_relay() -> InviteRelayClient:
    """Dependency providing the relay client."""
    return InviteRelayClient()
