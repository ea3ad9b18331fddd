"""Error taxonomy shared by services and routes.

Services raise these; the exception handler installed in ``eventdesk.main``
turns them into ``{"error": ..., "message": ...}`` JSON responses with the
class's HTTP status. Nothing here is retried automatically.
"""


class EventDeskError(Exception):
    """Base class for errors surfaced to the user as a message."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotAuthenticated(EventDeskError):
    status_code = 401
    error_code = "NOT_AUTHENTICATED"


class NotFound(EventDeskError):
    status_code = 404
    error_code = "NOT_FOUND"


class ValidationError(EventDeskError):
    status_code = 422
    error_code = "VALIDATION_ERROR"


class TokenAlreadyUsed(EventDeskError):
    """Raised when a single-use invitation token is resolved twice."""

    status_code = 409
    error_code = "TOKEN_ALREADY_USED"


class StoreWriteFailure(EventDeskError):
    status_code = 503
    error_code = "STORE_WRITE_FAILURE"


class NotificationDeliveryFailure(EventDeskError):
    status_code = 502
    error_code = "NOTIFICATION_DELIVERY_FAILURE"
