"""
Payout Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from core.errors import ConflictError, NotFoundError, ValidationError

from .models import Payout, PayoutStatus


# ============================================================================
# Custom Exceptions
# ============================================================================

class PayoutNotFoundError(NotFoundError):
    """Payout not found error"""

    def __init__(self, payout_id: str):
        super().__init__(f"Payout not found: {payout_id}", user_message="Payout not found")


class InvalidPayoutStateError(ConflictError):
    """Payout cannot move to the requested status"""
    pass


class PayoutValidationError(ValidationError):
    pass


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class PayoutRepositoryProtocol(Protocol):
    """Interface for the payout repository"""

    async def create_payout(self, payout: Payout) -> Payout:
        ...

    async def delete_payout(self, payout_id: str) -> bool:
        ...

    async def get_payout(self, payout_id: str) -> Optional[Payout]:
        ...

    async def get_retry_of(self, payout_id: str) -> Optional[Payout]:
        ...

    async def update_payout(
        self,
        payout_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[PayoutStatus] = None,
    ) -> Optional[Payout]:
        ...

    async def list_payouts(
        self,
        vendor_id: str,
        status: Optional[PayoutStatus] = None,
        limit: int = 50,
    ) -> List[Payout]:
        ...


# ============================================================================
# Collaborator Protocols
# ============================================================================

@runtime_checkable
class WalletLedgerProtocol(Protocol):
    """Wallet operations a payout needs"""

    async def get_wallet(self, vendor_id: str):
        ...

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

    async def finalize_transaction(self, transaction_id: str, status):
        ...

    async def find_transaction(self, vendor_id: str, transaction_type, reference: str):
        ...
