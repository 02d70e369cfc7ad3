"""
Settlement error taxonomy

Every service raises one of these (or a subclass defined in the service's
protocols.py). The HTTP layer maps them to status codes and shows
`user_message` to buyers and vendors; `str(error)` carries operator detail.
"""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class SettlementError(Exception):
    """Base exception for settlement operations"""

    http_status = 500
    default_user_message = "Something went wrong, please try again"

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message
        self.details = details or {}


class ValidationError(SettlementError):
    """Bad input: non-positive amount, empty order, quantity out of range"""

    http_status = 400


class ConflictError(SettlementError):
    """State-machine violation, e.g. releasing an already released escrow"""

    http_status = 409


class NotFoundError(SettlementError):
    """Missing order, escrow, delivery, payout or dispute"""

    http_status = 404


class DependencyError(SettlementError):
    """Courier gateway, object storage or ledger store unavailable"""

    http_status = 503


class InvariantViolation(SettlementError):
    """
    Internal consistency failure (e.g. wallet balance disagrees with ledger).

    Never shown to users verbatim: the user message is always the generic
    retry message, and the detail is logged at ERROR when raised.
    """

    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, user_message=self.default_user_message, details=details)
        logger.error(f"INVARIANT VIOLATION: {message} {self.details}")
