"""
Dispute Service Event Publishers
"""

import logging

from core.nats_client import Event, EventType, ServiceSource
from ..models import Dispute, DisputeStatus
from .models import DisputeStatusChangedEvent

logger = logging.getLogger(__name__)

_EVENT_TYPES = {
    DisputeStatus.INVESTIGATING: EventType.DISPUTE_INVESTIGATING,
    DisputeStatus.RESOLVED: EventType.DISPUTE_RESOLVED,
    DisputeStatus.CLOSED: EventType.DISPUTE_CLOSED,
}


async def publish_dispute_status_changed(event_bus, dispute: Dispute, actor_id: str = None) -> bool:
    """Publish dispute.investigating / dispute.resolved / dispute.closed"""
    event_type = _EVENT_TYPES.get(dispute.status)
    if event_type is None:
        return False
    if not event_bus:
        logger.debug(f"Event bus not available, skipping {event_type.value} event")
        return False

    try:
        payload = DisputeStatusChangedEvent(
            dispute_id=dispute.id,
            order_id=dispute.order_id,
            status=dispute.status.value,
            outcome=dispute.outcome.value if dispute.outcome else None,
            actor_id=actor_id,
        )
        event = Event(
            event_type=event_type,
            source=ServiceSource.DISPUTE_SERVICE,
            data=payload.model_dump(mode="json"),
        )
        await event_bus.publish_event(event)
        logger.info(f"✅ Published {event_type.value} event for dispute {dispute.id}")
        return True
    except Exception as e:
        logger.error(f"❌ Failed to publish {event_type.value} event: {e}")
        return False
