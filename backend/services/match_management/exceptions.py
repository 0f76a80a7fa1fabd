"""Custom exceptions for match request and match management."""

from common.exceptions import (
    DomainValidationError,
    InvalidTransitionError,
    NotFoundError,
)


class MatchRequestNotFoundError(NotFoundError):
    """Raised when a match request cannot be found."""
    error_code = "match_request_not_found"


class MatchNotFoundError(NotFoundError):
    """Raised when a match cannot be found."""
    error_code = "match_not_found"


class MatchRequestExpiredError(InvalidTransitionError):
    """Raised when acting on a match request past its 24 hour window."""
    error_code = "match_request_expired"


class OpenMatchRequestExistsError(InvalidTransitionError):
    """Raised when the trip/package pair already has an open request."""
    error_code = "open_match_request_exists"


class ConcurrentUpdateError(InvalidTransitionError):
    """Raised when another writer changed the row between read and write."""
    error_code = "concurrent_update"


class InsufficientSpaceError(DomainValidationError):
    """Raised when the trip cannot carry the package weight."""
    error_code = "insufficient_space"


class InvalidHandoffCodeError(DomainValidationError):
    """Raised when a pickup or delivery code does not match."""
    error_code = "invalid_handoff_code"
