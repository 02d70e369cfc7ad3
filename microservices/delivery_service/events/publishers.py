"""
Delivery Service Event Publishers
"""

import logging

from pydantic import BaseModel

from core.nats_client import Event, EventType, ServiceSource
from ..models import Delivery, DeliveryStatus, DeliveryStatusHistory
from .models import DeliveryCreatedEvent, DeliveryStatusChangedEvent

logger = logging.getLogger(__name__)


async def _publish(event_bus, event_type: EventType, payload: BaseModel) -> bool:
    if not event_bus:
        logger.debug(f"Event bus not available, skipping {event_type.value} event")
        return False

    try:
        event = Event(
            event_type=event_type,
            source=ServiceSource.DELIVERY_SERVICE,
            data=payload.model_dump(mode="json"),
        )
        await event_bus.publish_event(event)
        logger.info(f"✅ Published {event_type.value} event")
        return True
    except Exception as e:
        logger.error(f"❌ Failed to publish {event_type.value} event: {e}")
        return False


async def publish_delivery_created(event_bus, delivery: Delivery) -> bool:
    """Publish delivery.created event"""
    return await _publish(event_bus, EventType.DELIVERY_CREATED, DeliveryCreatedEvent(
        delivery_id=delivery.id,
        order_id=delivery.order_id,
        vendor_id=delivery.vendor_id,
        buyer_id=delivery.buyer_id,
        tracking_number=delivery.tracking_number,
    ))


async def publish_delivery_status_changed(
    event_bus,
    delivery: Delivery,
    old_status: DeliveryStatus,
    entry: DeliveryStatusHistory,
) -> bool:
    """Publish delivery.status_changed, plus delivery.delivered on delivery"""
    payload = DeliveryStatusChangedEvent(
        delivery_id=delivery.id,
        order_id=delivery.order_id,
        old_status=old_status.value,
        new_status=entry.status.value,
        location=entry.location,
        updated_by=entry.updated_by.value,
    )
    published = await _publish(event_bus, EventType.DELIVERY_STATUS_CHANGED, payload)
    if entry.status == DeliveryStatus.DELIVERED:
        published = await _publish(event_bus, EventType.DELIVERY_DELIVERED, payload) and published
    return published
