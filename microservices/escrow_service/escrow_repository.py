"""
Escrow Repository Implementation

Escrow transactions and release intents in the ledger store. The escrow
document id is derived from the order id, so a second escrow for the same
order collides on insert even if two holds race past the lookup.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from core.ledger_store import LedgerStoreProtocol
from .models import EscrowRelease, EscrowStatus, EscrowTransaction, ReleaseIntentStatus

logger = logging.getLogger(__name__)

_ESCROW_NAMESPACE = uuid.UUID("0b5d8a2e-4f61-4c1e-8d3a-97e2b1f0c6a4")


def escrow_id_for_order(order_id: str) -> str:
    return str(uuid.uuid5(_ESCROW_NAMESPACE, order_id))


class EscrowRepository:
    """Repository for escrow operations"""

    escrow_collection = "escrow_transactions"
    releases_collection = "escrow_releases"

    def __init__(self, store: LedgerStoreProtocol):
        self.store = store

    async def create_escrow(self, escrow: EscrowTransaction) -> EscrowTransaction:
        await self.store.insert(self.escrow_collection, escrow.model_dump(mode="json"))
        return escrow

    async def get_escrow(self, escrow_id: str) -> Optional[EscrowTransaction]:
        doc = await self.store.get(self.escrow_collection, escrow_id)
        return EscrowTransaction.model_validate(doc) if doc else None

    async def get_escrow_by_order(self, order_id: str) -> Optional[EscrowTransaction]:
        return await self.get_escrow(escrow_id_for_order(order_id))

    async def update_escrow(
        self,
        escrow_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[EscrowStatus] = None,
        expected_fields: Optional[Dict[str, Any]] = None,
    ) -> Optional[EscrowTransaction]:
        expected = dict(expected_fields or {})
        if expected_status:
            expected["status"] = expected_status.value
        expected = expected or None
        doc = await self.store.update(self.escrow_collection, escrow_id, updates, expected=expected)
        return EscrowTransaction.model_validate(doc) if doc else None

    async def create_release_intent(self, intent: EscrowRelease) -> EscrowRelease:
        await self.store.insert(self.releases_collection, intent.model_dump(mode="json"))
        return intent

    async def list_release_intents(
        self,
        escrow_id: Optional[str] = None,
        status: Optional[ReleaseIntentStatus] = None,
    ) -> List[EscrowRelease]:
        filters: Dict[str, Any] = {}
        if escrow_id:
            filters["escrow_transaction_id"] = escrow_id
        if status:
            filters["status"] = status.value
        docs = await self.store.query(self.releases_collection, filters, order_by="created_at")
        return [EscrowRelease.model_validate(doc) for doc in docs]

    async def update_release_intent(
        self,
        intent_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[ReleaseIntentStatus] = None,
    ) -> Optional[EscrowRelease]:
        expected = {"status": expected_status.value} if expected_status else None
        doc = await self.store.update(self.releases_collection, intent_id, updates, expected=expected)
        return EscrowRelease.model_validate(doc) if doc else None
