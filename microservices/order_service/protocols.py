"""
Order Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from core.errors import ConflictError, NotFoundError, ValidationError

# Import only models (no I/O dependencies)
from .models import Order, OrderItem, OrderStatus, PaymentTransaction


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class OrderNotFoundError(NotFoundError):
    """Order not found error"""

    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}", user_message="Order not found")
        self.order_id = order_id


class OrderValidationError(ValidationError):
    """Order validation error"""
    pass


class InvalidOrderStateError(ConflictError):
    """Invalid order state transition"""
    pass


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class OrderRepositoryProtocol(Protocol):
    """
    Interface for Order Repository.

    Implementations must provide these methods.
    Used for dependency injection to enable testing.
    """

    async def create_order(self, order: Order) -> Order:
        """Insert a new order document"""
        ...

    async def add_item(self, item: OrderItem) -> OrderItem:
        """Insert one line item snapshot"""
        ...

    async def delete_order(self, order_id: str) -> bool:
        """Delete an order (compensation only)"""
        ...

    async def delete_item(self, item_id: str) -> bool:
        """Delete a line item (compensation only)"""
        ...

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order by ID"""
        ...

    async def get_order_by_number(self, order_number: str) -> Optional[Order]:
        """Get order by human-readable number"""
        ...

    async def get_items(self, order_id: str) -> List[OrderItem]:
        """Get line items of an order"""
        ...

    async def list_orders(
        self,
        buyer_id: Optional[str] = None,
        vendor_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
    ) -> List[Order]:
        """List orders, newest first"""
        ...

    async def update_order(
        self,
        order_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[OrderStatus] = None,
    ) -> Optional[Order]:
        """Update order fields; None when expected_status no longer holds"""
        ...

    async def record_payment(self, payment: PaymentTransaction) -> PaymentTransaction:
        """Append a payment record"""
        ...
