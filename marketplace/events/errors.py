"""
Error taxonomy shared by every marketplace component.

Each error carries a machine-readable ``kind`` and the HTTP status the
API layer answers with. Only StorageUnavailable is worth retrying.
"""


class MarketplaceError(Exception):
    """Base class for all failures reported to callers."""
    kind = "marketplace_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class ValidationError(MarketplaceError):
    """Malformed or incomplete input; the caller must fix it and resubmit."""
    kind = "validation_error"
    status_code = 400


class NotFound(MarketplaceError):
    """Unknown identifier."""
    kind = "not_found"
    status_code = 404


class Forbidden(MarketplaceError):
    """The caller is not the actor allowed to perform this operation."""
    kind = "forbidden"
    status_code = 403


class InvalidTransition(MarketplaceError):
    """The order or quotation state no longer permits the operation."""
    kind = "invalid_transition"
    status_code = 409


class ChannelClosed(MarketplaceError):
    """The quotation's chat channel no longer accepts messages."""
    kind = "channel_closed"
    status_code = 409


class StorageUnavailable(MarketplaceError):
    """Persistence failed or a lock could not be taken in time."""
    kind = "storage_unavailable"
    status_code = 503
    retryable = True
