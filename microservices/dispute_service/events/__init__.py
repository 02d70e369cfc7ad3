"""
Dispute Service Events Module
"""

from .models import DisputeStatusChangedEvent
from .publishers import publish_dispute_status_changed

__all__ = [
    "DisputeStatusChangedEvent",
    "publish_dispute_status_changed",
]
