"""
Wallet Service Event Publishers
"""

import logging

from core.nats_client import Event, EventType, ServiceSource
from ..models import WalletTransaction
from .models import WalletBalanceChangedEvent

logger = logging.getLogger(__name__)


async def _publish(event_bus, event_type: EventType, transaction: WalletTransaction) -> bool:
    if not event_bus:
        return False

    try:
        payload = WalletBalanceChangedEvent(
            vendor_id=transaction.vendor_id,
            transaction_id=transaction.id,
            transaction_type=transaction.transaction_type.value,
            amount=transaction.amount,
            balance_after=transaction.balance_after,
            reference=transaction.reference,
        )
        event = Event(
            event_type=event_type,
            source=ServiceSource.WALLET_SERVICE,
            data=payload.model_dump(mode="json"),
        )
        await event_bus.publish_event(event)
        logger.info(f"Published {event_type.value} for vendor {transaction.vendor_id}")
        return True
    except Exception as e:
        logger.error(f"Failed to publish {event_type.value}: {e}")
        return False


async def publish_wallet_credited(event_bus, transaction: WalletTransaction) -> bool:
    """Publish wallet.credited event"""
    return await _publish(event_bus, EventType.WALLET_CREDITED, transaction)


async def publish_wallet_debited(event_bus, transaction: WalletTransaction) -> bool:
    """Publish wallet.debited event"""
    return await _publish(event_bus, EventType.WALLET_DEBITED, transaction)
