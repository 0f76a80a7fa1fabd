"""
Shared domain exceptions and the REST framework exception handler.

Service layers raise these; the HTTP layer turns them into the
``{"success": False, "error": <code>, "message": <text>}`` body.
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class AirbarError(Exception):
    """Base class for domain errors."""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "error"

    def __init__(self, message: str = "", error_code: str = None):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""
        if error_code:
            self.error_code = error_code


class NotFoundError(AirbarError):
    """Referenced entity does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"


class InvalidTransitionError(AirbarError):
    """State change not permitted from the current state."""
    status_code = status.HTTP_409_CONFLICT
    error_code = "invalid_transition"


class DomainValidationError(AirbarError):
    """Malformed input rejected by a service."""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "validation_error"


class NotParticipantError(AirbarError):
    """Caller is not allowed to act on this entity."""
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "not_participant"


class ExternalServiceFailure(AirbarError):
    """Cache or another collaborator is unavailable."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "external_service_failure"


def airbar_exception_handler(exc, context):
    """Render domain errors; defer everything else to DRF."""
    if isinstance(exc, AirbarError):
        if exc.status_code >= 500:
            logger.error("Service failure in %s: %s", context.get("view"), exc.message)
        return Response(
            {
                "success": False,
                "error": exc.error_code,
                "message": exc.message,
            },
            status=exc.status_code,
        )

    return exception_handler(exc, context)
