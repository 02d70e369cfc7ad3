"""
Escrow Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from core.errors import ConflictError, NotFoundError, ValidationError

from .models import EscrowRelease, EscrowStatus, EscrowTransaction, ReleaseIntentStatus


# ============================================================================
# Custom Exceptions
# ============================================================================

class EscrowNotFoundError(NotFoundError):
    """No escrow transaction for the order"""

    def __init__(self, order_id: str):
        super().__init__(f"No escrow transaction for order {order_id}", user_message="Escrow record not found")


class EscrowAlreadySettledError(ConflictError):
    """Escrow was already released or refunded"""

    def __init__(self, escrow_id: str, status: EscrowStatus):
        super().__init__(
            f"Escrow {escrow_id} is already {status.value}",
            user_message="Escrow already released or refunded",
        )


class EscrowDisputedError(ConflictError):
    """Escrow is frozen by an active dispute"""

    def __init__(self, escrow_id: str):
        super().__init__(
            f"Escrow {escrow_id} is under dispute",
            user_message="Funds are on hold while a dispute is open",
        )


class PaymentNotCapturedError(ConflictError):
    """Escrow cannot be opened for an unpaid order"""
    pass


class EscrowValidationError(ValidationError):
    pass


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class EscrowRepositoryProtocol(Protocol):
    """Interface for the escrow repository"""

    async def create_escrow(self, escrow: EscrowTransaction) -> EscrowTransaction:
        ...

    async def get_escrow(self, escrow_id: str) -> Optional[EscrowTransaction]:
        ...

    async def get_escrow_by_order(self, order_id: str) -> Optional[EscrowTransaction]:
        ...

    async def update_escrow(
        self,
        escrow_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[EscrowStatus] = None,
        expected_fields: Optional[Dict[str, Any]] = None,
    ) -> Optional[EscrowTransaction]:
        """Compare-and-set on status and any expected_fields"""
        ...

    async def create_release_intent(self, intent: EscrowRelease) -> EscrowRelease:
        ...

    async def list_release_intents(
        self,
        escrow_id: Optional[str] = None,
        status: Optional[ReleaseIntentStatus] = None,
    ) -> List[EscrowRelease]:
        ...

    async def update_release_intent(
        self,
        intent_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[ReleaseIntentStatus] = None,
    ) -> Optional[EscrowRelease]:
        ...


# ============================================================================
# Collaborator Protocols
# ============================================================================

@runtime_checkable
class OrderManagerProtocol(Protocol):
    """Order operations the escrow ledger relies on"""

    async def get_order(self, order_id: str):
        ...

    async def transition_status(self, order_id: str, new_status, fields=None, expected_status=None):
        ...

    async def cancel_order(self, order_id: str, reason: str, cancelled_by=None):
        ...

    async def update_order_payment_status(self, order_id: str, status, reference: str, method=None):
        ...

    async def restore_after_dispute(self, order_id: str, refunded: bool, reason=None):
        ...


@runtime_checkable
class WalletLedgerProtocol(Protocol):
    """The only way escrow touches a vendor balance"""

    async def apply_wallet_delta(
        self,
        vendor_id: str,
        amount: Decimal,
        transaction_type,
        reference: str,
        description: Optional[str] = None,
        status=None,
    ):
        ...


@runtime_checkable
class DeliveryConfirmationProtocol(Protocol):
    """Delivery tracker hook used by buyer confirmation"""

    async def mark_delivered_by_buyer(self, order_id: str, buyer_id: str):
        ...
