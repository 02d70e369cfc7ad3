"""
Dispute Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from core.errors import ConflictError, NotFoundError

from .models import Dispute, DisputeStatus


# ============================================================================
# Custom Exceptions
# ============================================================================

class DisputeNotFoundError(NotFoundError):
    """Dispute not found error"""

    def __init__(self, dispute_id: str):
        super().__init__(f"Dispute not found: {dispute_id}", user_message="Dispute not found")


class InvalidDisputeStateError(ConflictError):
    """Dispute cannot move to the requested status"""
    pass


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class DisputeRepositoryProtocol(Protocol):
    """Interface for the dispute repository"""

    async def create_dispute(self, dispute: Dispute) -> Dispute:
        ...

    async def delete_dispute(self, dispute_id: str) -> bool:
        ...

    async def get_dispute(self, dispute_id: str) -> Optional[Dispute]:
        ...

    async def list_disputes(
        self,
        order_id: Optional[str] = None,
        status: Optional[DisputeStatus] = None,
        limit: int = 50,
    ) -> List[Dispute]:
        ...

    async def update_dispute(
        self,
        dispute_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[DisputeStatus] = None,
    ) -> Optional[Dispute]:
        ...


# ============================================================================
# Collaborator Protocols
# ============================================================================

@runtime_checkable
class EscrowSettlementProtocol(Protocol):
    """The escrow operations a dispute resolution may trigger"""

    async def release_escrow(self, order_id: str, release_type, released_by=None, notes=None):
        ...

    async def refund_escrow(self, order_id: str, reason: str, refunded_by=None, from_dispute: bool = False):
        ...

    async def get_escrow_for_order(self, order_id: str):
        ...
