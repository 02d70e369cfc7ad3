"""
Order Repository Implementation

Stores orders, line items and payment records in the ledger store.
"""

import logging
from typing import Any, Dict, List, Optional

from core.ledger_store import LedgerStoreProtocol
from .models import Order, OrderItem, OrderStatus, PaymentTransaction

logger = logging.getLogger(__name__)


class OrderRepository:
    """Repository for order operations"""

    orders_collection = "orders"
    items_collection = "order_items"
    payments_collection = "payment_transactions"

    def __init__(self, store: LedgerStoreProtocol):
        self.store = store

    async def create_order(self, order: Order) -> Order:
        await self.store.insert(self.orders_collection, order.model_dump(mode="json"))
        return order

    async def add_item(self, item: OrderItem) -> OrderItem:
        await self.store.insert(self.items_collection, item.model_dump(mode="json"))
        return item

    async def delete_order(self, order_id: str) -> bool:
        return await self.store.delete(self.orders_collection, order_id)

    async def delete_item(self, item_id: str) -> bool:
        return await self.store.delete(self.items_collection, item_id)

    async def get_order(self, order_id: str) -> Optional[Order]:
        doc = await self.store.get(self.orders_collection, order_id)
        return Order.model_validate(doc) if doc else None

    async def get_order_by_number(self, order_number: str) -> Optional[Order]:
        docs = await self.store.query(
            self.orders_collection, {"order_number": order_number}, limit=1
        )
        return Order.model_validate(docs[0]) if docs else None

    async def get_items(self, order_id: str) -> List[OrderItem]:
        docs = await self.store.query(
            self.items_collection, {"order_id": order_id}, order_by="created_at"
        )
        return [OrderItem.model_validate(doc) for doc in docs]

    async def list_orders(
        self,
        buyer_id: Optional[str] = None,
        vendor_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
    ) -> List[Order]:
        filters: Dict[str, Any] = {}
        if buyer_id:
            filters["buyer_id"] = buyer_id
        if vendor_id:
            filters["vendor_id"] = vendor_id
        if status:
            filters["status"] = status.value
        docs = await self.store.query(
            self.orders_collection, filters, order_by="created_at", descending=True, limit=limit
        )
        return [Order.model_validate(doc) for doc in docs]

    async def update_order(
        self,
        order_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[OrderStatus] = None,
    ) -> Optional[Order]:
        expected = {"status": expected_status.value} if expected_status else None
        doc = await self.store.update(self.orders_collection, order_id, updates, expected=expected)
        return Order.model_validate(doc) if doc else None

    async def record_payment(self, payment: PaymentTransaction) -> PaymentTransaction:
        await self.store.insert(self.payments_collection, payment.model_dump(mode="json"))
        return payment
