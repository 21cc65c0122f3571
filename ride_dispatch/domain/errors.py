"""
Error taxonomy for the dispatch core.

Every failure surfaces to the caller as one of these kinds.  Only
``StoreUnavailableError`` may be retried (with backoff) by the transport;
``ConflictError`` means a race was lost and the caller should refresh
state before choosing a new target.
"""


class DispatchError(Exception):
    """Base class; ``kind`` is the stable name reported to clients."""

    kind = "DispatchError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DispatchError):
    """Malformed or missing required input."""

    kind = "ValidationError"


class AuthorizationError(DispatchError):
    """Actor lacks the role or ride binding the operation requires."""

    kind = "AuthorizationError"


class NotFoundError(DispatchError):
    kind = "NotFoundError"


class InvalidTransitionError(DispatchError):
    """Requested transition is not reachable from the ride's current status."""

    kind = "InvalidTransitionError"


class ConflictError(DispatchError):
    """A race was lost (ride taken, rating slot already filled)."""

    kind = "ConflictError"


class StoreUnavailableError(DispatchError):
    """Backing store could not be reached.  Fatal to the single operation."""

    kind = "StoreUnavailableError"
