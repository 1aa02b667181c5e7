"""Exception hierarchy for the ride lifecycle.

Transient errors may succeed when the passenger retries; permanent errors
will not.  ``NotAuthenticatedError`` is the only error that ends the flow.
"""

from __future__ import annotations

from typing import Any


class RideError(Exception):
    """Base exception for all ride lifecycle errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientError(RideError):
    """Errors that may succeed on retry."""


class NetworkError(TransientError):
    """Timeout or connection failure talking to an external service."""


class ServiceUnavailableError(TransientError):
    """External service answered with a 5xx or an over-quota status."""


class StoreUnavailableError(TransientError):
    """The document store or its change feed could not be reached."""


class PermanentError(RideError):
    """Errors that will not succeed on retry."""


class ValidationError(PermanentError):
    """Invalid input or data format."""


class NoRouteFoundError(ValidationError):
    """No drivable route between the two coordinates."""


class InvalidSnapshotError(ValidationError):
    """A store snapshot could not be read as a ride request."""


class RatingRejectedError(ValidationError):
    """Rating outside 1-5, or submitted for a ride that cannot be rated."""


class CancellationReasonRequiredError(ValidationError):
    """A driver is assigned and no cancellation reason was chosen."""


class NotFoundError(PermanentError):
    """Requested entity does not exist."""


class RideNotFoundError(NotFoundError):
    """No ride request with the given id."""


class StateError(PermanentError):
    """The operation conflicts with the current state."""


class InvalidStateTransition(StateError):
    """Raised when a ride status change violates the state machine."""


class DocumentExistsError(StateError):
    """A document with the requested id already exists."""


class NotAuthenticatedError(RideError):
    """No authenticated passenger; the flow must return to sign-in."""
