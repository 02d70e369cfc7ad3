"""
Escrow Service Event Publishers

Best-effort: a failed publish is logged and never fails the escrow operation.
"""

import logging
from typing import Optional

from pydantic import BaseModel

from core.nats_client import Event, EventType, ServiceSource
from ..models import EscrowTransaction
from .models import (
    DisputeOpenedEvent,
    EscrowHeldEvent,
    EscrowRefundedEvent,
    EscrowReleasedEvent,
)

logger = logging.getLogger(__name__)


async def _publish(event_bus, event_type: EventType, payload: BaseModel) -> bool:
    if not event_bus:
        logger.debug(f"Event bus not available, skipping {event_type.value} event")
        return False

    try:
        event = Event(
            event_type=event_type,
            source=ServiceSource.ESCROW_SERVICE,
            data=payload.model_dump(mode="json"),
        )
        await event_bus.publish_event(event)
        logger.info(f"✅ Published {event_type.value} event")
        return True
    except Exception as e:
        logger.error(f"❌ Failed to publish {event_type.value} event: {e}")
        return False


async def publish_escrow_held(event_bus, escrow: EscrowTransaction) -> bool:
    """Publish escrow.held event"""
    return await _publish(event_bus, EventType.ESCROW_HELD, EscrowHeldEvent(
        escrow_id=escrow.id,
        order_id=escrow.order_id,
        vendor_id=escrow.vendor_id,
        amount=escrow.amount,
        vendor_amount=escrow.vendor_amount,
        platform_fee=escrow.platform_fee,
    ))


async def publish_escrow_released(event_bus, escrow: EscrowTransaction) -> bool:
    """Publish escrow.released event"""
    return await _publish(event_bus, EventType.ESCROW_RELEASED, EscrowReleasedEvent(
        escrow_id=escrow.id,
        order_id=escrow.order_id,
        vendor_id=escrow.vendor_id,
        vendor_amount=escrow.vendor_amount,
        release_type=escrow.release_type.value if escrow.release_type else "",
        released_by=escrow.released_by,
    ))


async def publish_escrow_refunded(event_bus, escrow: EscrowTransaction, reason: Optional[str] = None) -> bool:
    """Publish escrow.refunded event"""
    return await _publish(event_bus, EventType.ESCROW_REFUNDED, EscrowRefundedEvent(
        escrow_id=escrow.id,
        order_id=escrow.order_id,
        buyer_id=escrow.buyer_id,
        amount=escrow.amount,
        reason=reason,
    ))


async def publish_dispute_opened(event_bus, dispute) -> bool:
    """Publish dispute.opened event"""
    return await _publish(event_bus, EventType.DISPUTE_OPENED, DisputeOpenedEvent(
        dispute_id=dispute.id,
        order_id=dispute.order_id,
        escrow_id=dispute.escrow_transaction_id,
        filed_by=dispute.filed_by,
        filed_by_type=dispute.filed_by_type.value,
        dispute_type=dispute.dispute_type.value,
    ))
