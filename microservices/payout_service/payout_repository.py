"""
Payout Repository Implementation
"""

import logging
from typing import Any, Dict, List, Optional

from core.ledger_store import LedgerStoreProtocol
from .models import Payout, PayoutStatus

logger = logging.getLogger(__name__)


class PayoutRepository:
    """Repository for payout documents"""

    collection = "payouts"

    def __init__(self, store: LedgerStoreProtocol):
        self.store = store

    async def create_payout(self, payout: Payout) -> Payout:
        await self.store.insert(self.collection, payout.model_dump(mode="json"))
        return payout

    async def delete_payout(self, payout_id: str) -> bool:
        return await self.store.delete(self.collection, payout_id)

    async def get_payout(self, payout_id: str) -> Optional[Payout]:
        doc = await self.store.get(self.collection, payout_id)
        return Payout.model_validate(doc) if doc else None

    async def get_retry_of(self, payout_id: str) -> Optional[Payout]:
        docs = await self.store.query(self.collection, {"retry_of": payout_id}, limit=1)
        return Payout.model_validate(docs[0]) if docs else None

    async def update_payout(
        self,
        payout_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[PayoutStatus] = None,
    ) -> Optional[Payout]:
        expected = {"status": expected_status.value} if expected_status else None
        doc = await self.store.update(self.collection, payout_id, updates, expected=expected)
        return Payout.model_validate(doc) if doc else None

    async def list_payouts(
        self,
        vendor_id: str,
        status: Optional[PayoutStatus] = None,
        limit: int = 50,
    ) -> List[Payout]:
        filters: Dict[str, Any] = {"vendor_id": vendor_id}
        if status:
            filters["status"] = status.value
        docs = await self.store.query(
            self.collection, filters, order_by="requested_at", descending=True, limit=limit
        )
        return [Payout.model_validate(doc) for doc in docs]
