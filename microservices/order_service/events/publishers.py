"""
Order Service Event Publishers

Functions to publish events from order service
"""

import logging
from typing import Optional

from core.nats_client import Event, EventType, ServiceSource
from ..models import Order
from .models import (
    OrderCreatedEvent,
    OrderPaidEvent,
    OrderStatusChangedEvent,
    OrderCancelledEvent,
)

logger = logging.getLogger(__name__)


async def _publish(event_bus, event_type: EventType, payload, label: str) -> bool:
    if not event_bus:
        logger.warning(f"Event bus not available, skipping {label} event")
        return False

    try:
        event = Event(
            event_type=event_type,
            source=ServiceSource.ORDER_SERVICE,
            data=payload.model_dump(mode='json')
        )
        await event_bus.publish_event(event)
        logger.info(f"✅ Published {label} event for order {payload.order_id}")
        return True

    except Exception as e:
        logger.error(f"❌ Failed to publish {label} event: {e}")
        return False


async def publish_order_created(event_bus, order: Order, item_count: int) -> bool:
    """Publish order.created event"""
    payload = OrderCreatedEvent(
        order_id=order.id,
        order_number=order.order_number,
        buyer_id=order.buyer_id,
        vendor_id=order.vendor_id,
        total=order.total,
        item_count=item_count,
    )
    return await _publish(event_bus, EventType.ORDER_CREATED, payload, "order.created")


async def publish_order_paid(event_bus, order: Order) -> bool:
    """Publish order.paid event"""
    payload = OrderPaidEvent(
        order_id=order.id,
        buyer_id=order.buyer_id,
        vendor_id=order.vendor_id,
        total=order.total,
        payment_reference=order.payment_reference or "",
    )
    return await _publish(event_bus, EventType.ORDER_PAID, payload, "order.paid")


async def publish_order_status_changed(event_bus, order: Order, old_status: str) -> bool:
    """Publish order.status_changed event"""
    payload = OrderStatusChangedEvent(
        order_id=order.id,
        buyer_id=order.buyer_id,
        vendor_id=order.vendor_id,
        old_status=old_status,
        new_status=order.status.value,
    )
    return await _publish(event_bus, EventType.ORDER_STATUS_CHANGED, payload, "order.status_changed")


async def publish_order_cancelled(event_bus, order: Order, reason: Optional[str] = None) -> bool:
    """Publish order.cancelled event"""
    payload = OrderCancelledEvent(
        order_id=order.id,
        buyer_id=order.buyer_id,
        vendor_id=order.vendor_id,
        reason=reason,
    )
    return await _publish(event_bus, EventType.ORDER_CANCELLED, payload, "order.cancelled")
