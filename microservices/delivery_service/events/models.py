"""
Delivery Service Event Models
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryCreatedEvent(BaseModel):
    delivery_id: str
    order_id: str
    vendor_id: str
    buyer_id: str
    tracking_number: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class DeliveryStatusChangedEvent(BaseModel):
    """Published on every delivery status change; delivery.delivered uses the same payload"""
    delivery_id: str
    order_id: str
    old_status: str
    new_status: str
    location: Optional[str] = None
    updated_by: str
    timestamp: datetime = Field(default_factory=_now)
