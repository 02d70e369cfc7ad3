"""
Delivery Repository Implementation

Deliveries, their status history and the fallback delivery zones. A
delivery id is derived from its order id, so a second booking for the
same order collides on insert.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from core.ledger_store import LedgerStoreProtocol
from .models import Delivery, DeliveryStatus, DeliveryStatusHistory, DeliveryZone

logger = logging.getLogger(__name__)

_DELIVERY_NAMESPACE = uuid.UUID("5c2f7e91-3a0d-4b8e-9f16-d4a7c0e2b853")


def delivery_id_for_order(order_id: str) -> str:
    return str(uuid.uuid5(_DELIVERY_NAMESPACE, order_id))


class DeliveryRepository:
    """Repository for delivery operations"""

    deliveries_collection = "deliveries"
    history_collection = "delivery_status_history"
    zones_collection = "delivery_zones"

    def __init__(self, store: LedgerStoreProtocol):
        self.store = store

    async def create_delivery(self, delivery: Delivery) -> Delivery:
        await self.store.insert(self.deliveries_collection, delivery.model_dump(mode="json"))
        return delivery

    async def get_delivery(self, delivery_id: str) -> Optional[Delivery]:
        doc = await self.store.get(self.deliveries_collection, delivery_id)
        return Delivery.model_validate(doc) if doc else None

    async def _find_one(self, filters: Dict[str, Any]) -> Optional[Delivery]:
        docs = await self.store.query(self.deliveries_collection, filters, limit=1)
        return Delivery.model_validate(docs[0]) if docs else None

    async def get_delivery_by_order(self, order_id: str) -> Optional[Delivery]:
        return await self.get_delivery(delivery_id_for_order(order_id))

    async def get_delivery_by_tracking_number(self, tracking_number: str) -> Optional[Delivery]:
        return await self._find_one({"tracking_number": tracking_number})

    async def update_delivery(
        self,
        delivery_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[DeliveryStatus] = None,
    ) -> Optional[Delivery]:
        expected = {"delivery_status": expected_status.value} if expected_status else None
        doc = await self.store.update(self.deliveries_collection, delivery_id, updates, expected=expected)
        return Delivery.model_validate(doc) if doc else None

    async def add_status_history(self, entry: DeliveryStatusHistory) -> DeliveryStatusHistory:
        await self.store.insert(self.history_collection, entry.model_dump(mode="json"))
        return entry

    async def get_status_history(self, delivery_id: str) -> List[DeliveryStatusHistory]:
        docs = await self.store.query(
            self.history_collection, {"delivery_id": delivery_id}, order_by="created_at"
        )
        return [DeliveryStatusHistory.model_validate(doc) for doc in docs]

    async def get_zone(self, state: str) -> Optional[DeliveryZone]:
        docs = await self.store.query(self.zones_collection, {"state": state, "is_active": True}, limit=1)
        return DeliveryZone.model_validate(docs[0]) if docs else None

    async def upsert_zone(self, zone: DeliveryZone) -> DeliveryZone:
        doc = zone.model_dump(mode="json")
        if await self.store.get(self.zones_collection, zone.id):
            await self.store.update(self.zones_collection, zone.id, doc)
        else:
            await self.store.insert(self.zones_collection, doc)
        return zone
