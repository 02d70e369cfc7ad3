"""
Order Service Events Module

Exports all event-related functionality for order service
"""

from .models import (
    OrderCreatedEvent,
    OrderPaidEvent,
    OrderStatusChangedEvent,
    OrderCancelledEvent,
)

from .publishers import (
    publish_order_created,
    publish_order_paid,
    publish_order_status_changed,
    publish_order_cancelled,
)

__all__ = [
    # Event Models
    "OrderCreatedEvent",
    "OrderPaidEvent",
    "OrderStatusChangedEvent",
    "OrderCancelledEvent",
    # Publishers
    "publish_order_created",
    "publish_order_paid",
    "publish_order_status_changed",
    "publish_order_cancelled",
]
