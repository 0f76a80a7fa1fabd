"""
Match management service - match request and match lifecycle operations.

This module handles:
    - Proposing, accepting, declining and expiring match requests
    - Payment with escrow and match creation
    - Hand-off tracking (pickup, transit, delivery)
    - Reporting issues on a match
"""

from .match_request_lifecycle import (
    PaymentResult,
    create_match_request,
    accept_match_request,
    decline_match_request,
    pay_match_request,
    confirm_payment_from_webhook,
    record_payment_failure,
    expire_match_request,
    expire_stale_match_requests,
    get_match_request,
    list_user_match_requests,
)
from .match_lifecycle import (
    update_match_tracking,
    report_issue,
    get_match,
    list_user_matches,
)
from .codes import generate_handoff_code, generate_code_pair

from .exceptions import (
    MatchRequestNotFoundError,
    MatchNotFoundError,
    MatchRequestExpiredError,
    OpenMatchRequestExistsError,
    ConcurrentUpdateError,
    InsufficientSpaceError,
    InvalidHandoffCodeError,
)

__all__ = [
    # Match request lifecycle
    "PaymentResult",
    "create_match_request",
    "accept_match_request",
    "decline_match_request",
    "pay_match_request",
    "confirm_payment_from_webhook",
    "record_payment_failure",
    "expire_match_request",
    "expire_stale_match_requests",
    "get_match_request",
    "list_user_match_requests",
    # Match lifecycle
    "update_match_tracking",
    "report_issue",
    "get_match",
    "list_user_matches",
    # Codes
    "generate_handoff_code",
    "generate_code_pair",
    # Exceptions
    "MatchRequestNotFoundError",
    "MatchNotFoundError",
    "MatchRequestExpiredError",
    "OpenMatchRequestExistsError",
    "ConcurrentUpdateError",
    "InsufficientSpaceError",
    "InvalidHandoffCodeError",
]
