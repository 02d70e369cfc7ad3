"""
Delivery Service Events Module
"""

from .models import DeliveryCreatedEvent, DeliveryStatusChangedEvent
from .publishers import publish_delivery_created, publish_delivery_status_changed

__all__ = [
    "DeliveryCreatedEvent",
    "DeliveryStatusChangedEvent",
    "publish_delivery_created",
    "publish_delivery_status_changed",
]
