"""
Payout Service Events Module
"""

from .models import PayoutEvent
from .publishers import publish_payout_event

__all__ = [
    "PayoutEvent",
    "publish_payout_event",
]
