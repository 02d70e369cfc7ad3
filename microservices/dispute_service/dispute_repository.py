"""
Dispute Repository Implementation
"""

import logging
from typing import Any, Dict, List, Optional

from core.ledger_store import LedgerStoreProtocol
from .models import Dispute, DisputeStatus

logger = logging.getLogger(__name__)


class DisputeRepository:
    """Repository for dispute documents"""

    collection = "disputes"

    def __init__(self, store: LedgerStoreProtocol):
        self.store = store

    async def create_dispute(self, dispute: Dispute) -> Dispute:
        await self.store.insert(self.collection, dispute.model_dump(mode="json"))
        return dispute

    async def delete_dispute(self, dispute_id: str) -> bool:
        return await self.store.delete(self.collection, dispute_id)

    async def get_dispute(self, dispute_id: str) -> Optional[Dispute]:
        doc = await self.store.get(self.collection, dispute_id)
        return Dispute.model_validate(doc) if doc else None

    async def list_disputes(
        self,
        order_id: Optional[str] = None,
        status: Optional[DisputeStatus] = None,
        limit: int = 50,
    ) -> List[Dispute]:
        filters: Dict[str, Any] = {}
        if order_id:
            filters["order_id"] = order_id
        if status:
            filters["status"] = status.value
        docs = await self.store.query(
            self.collection, filters, order_by="created_at", descending=True, limit=limit
        )
        return [Dispute.model_validate(doc) for doc in docs]

    async def update_dispute(
        self,
        dispute_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[DisputeStatus] = None,
    ) -> Optional[Dispute]:
        expected = {"status": expected_status.value} if expected_status else None
        doc = await self.store.update(self.collection, dispute_id, updates, expected=expected)
        return Dispute.model_validate(doc) if doc else None
