"""
Payout Service Event Publishers
"""

import logging

from core.nats_client import Event, EventType, ServiceSource
from ..models import Payout, PayoutStatus
from .models import PayoutEvent

logger = logging.getLogger(__name__)

_EVENT_TYPES = {
    PayoutStatus.PENDING: EventType.PAYOUT_REQUESTED,
    PayoutStatus.COMPLETED: EventType.PAYOUT_COMPLETED,
    PayoutStatus.FAILED: EventType.PAYOUT_FAILED,
}


async def publish_payout_event(event_bus, payout: Payout) -> bool:
    """Publish the event matching the payout's current status"""
    event_type = _EVENT_TYPES.get(payout.status)
    if event_type is None:
        return False
    if not event_bus:
        logger.debug(f"Event bus not available, skipping {event_type.value} event")
        return False

    try:
        payload = PayoutEvent(
            payout_id=payout.id,
            vendor_id=payout.vendor_id,
            amount=payout.amount,
            status=payout.status.value,
            transfer_reference=payout.transfer_reference,
            failure_reason=payout.failure_reason,
        )
        event = Event(
            event_type=event_type,
            source=ServiceSource.PAYOUT_SERVICE,
            data=payload.model_dump(mode="json"),
        )
        await event_bus.publish_event(event)
        logger.info(f"✅ Published {event_type.value} event for payout {payout.id}")
        return True
    except Exception as e:
        logger.error(f"❌ Failed to publish {event_type.value} event: {e}")
        return False
