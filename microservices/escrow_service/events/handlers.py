"""
Escrow Service Event Handlers

Handlers for events from the order and delivery services
"""

import logging
from typing import Any, Dict

from core.errors import ConflictError, NotFoundError
from ..models import EscrowStatus, ReleaseType

logger = logging.getLogger(__name__)

# Idempotency tracking
processed_event_ids = set()


def is_event_processed(event_id: str) -> bool:
    """Check if event has already been processed (idempotency)"""
    return event_id in processed_event_ids


def mark_event_processed(event_id: str):
    """Mark event as processed"""
    global processed_event_ids
    processed_event_ids.add(event_id)
    # Limit size to prevent memory issues
    if len(processed_event_ids) > 10000:
        processed_event_ids = set(list(processed_event_ids)[5000:])


async def handle_order_paid(event_data: Dict[str, Any], escrow_service, event_id: str = None) -> None:
    """
    Handle order.paid event
    Open the escrow hold for the paid order
    """
    if event_id and is_event_processed(event_id):
        logger.debug(f"Event {event_id} already processed, skipping")
        return

    order_id = event_data.get("order_id")
    if not order_id:
        logger.warning("order.paid event missing order_id")
        return

    try:
        escrow = await escrow_service.hold_escrow(order_id, event_data.get("payment_reference"))
        logger.info(f"✅ Escrow {escrow.id} held for order {order_id}")
    except (ConflictError, NotFoundError) as e:
        logger.warning(f"⚠️ Could not hold escrow for order {order_id}: {e.message}")

    if event_id:
        mark_event_processed(event_id)


async def handle_delivery_delivered(event_data: Dict[str, Any], escrow_service, event_id: str = None) -> None:
    """
    Handle delivery.delivered event
    Automatic release when the courier (not the buyer) confirms delivery
    """
    if event_id and is_event_processed(event_id):
        logger.debug(f"Event {event_id} already processed, skipping")
        return

    order_id = event_data.get("order_id")
    if not order_id or event_data.get("updated_by") == "buyer":
        return

    if not escrow_service.config.escrow_auto_release_on_delivery:
        logger.debug(f"Auto release disabled, order {order_id} waits for buyer confirmation")
        return

    try:
        escrow = await escrow_service.get_escrow_for_order(order_id)
        if escrow.status != EscrowStatus.HELD:
            logger.info(f"Escrow for order {order_id} is {escrow.status.value}, no auto release")
        else:
            await escrow_service.release_escrow(order_id, ReleaseType.AUTO_DELIVERY, "system")
            logger.info(f"✅ Auto-released escrow for delivered order {order_id}")
    except (ConflictError, NotFoundError) as e:
        logger.warning(f"⚠️ Auto release skipped for order {order_id}: {e.message}")

    if event_id:
        mark_event_processed(event_id)


def get_event_handlers(escrow_service):
    """
    Get all event handlers for escrow service.

    Returns:
        Dict[str, callable]: Event pattern -> handler function mapping
    """
    return {
        "order.paid": lambda event: handle_order_paid(event.data, escrow_service, event.id),
        "delivery.delivered": lambda event: handle_delivery_delivered(event.data, escrow_service, event.id),
    }
