"""
Escrow Service Events Module
"""

from .models import (
    EscrowHeldEvent,
    EscrowReleasedEvent,
    EscrowRefundedEvent,
    DisputeOpenedEvent,
)
from .publishers import (
    publish_escrow_held,
    publish_escrow_released,
    publish_escrow_refunded,
    publish_dispute_opened,
)
from .handlers import get_event_handlers

__all__ = [
    "EscrowHeldEvent",
    "EscrowReleasedEvent",
    "EscrowRefundedEvent",
    "DisputeOpenedEvent",
    "publish_escrow_held",
    "publish_escrow_released",
    "publish_escrow_refunded",
    "publish_dispute_opened",
    "get_event_handlers",
]
