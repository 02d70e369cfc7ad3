"""
Order Service Event Models

Pydantic models for events published by order service
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from decimal import Decimal


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderCreatedEvent(BaseModel):
    """Event published when order is created"""
    order_id: str
    order_number: str
    buyer_id: str
    vendor_id: str
    total: Decimal
    item_count: int
    timestamp: datetime = Field(default_factory=_now)


class OrderPaidEvent(BaseModel):
    """Event published when payment is captured; opens escrow"""
    order_id: str
    buyer_id: str
    vendor_id: str
    total: Decimal
    payment_reference: str
    timestamp: datetime = Field(default_factory=_now)


class OrderStatusChangedEvent(BaseModel):
    """Event published on every order status transition"""
    order_id: str
    buyer_id: str
    vendor_id: str
    old_status: str
    new_status: str
    timestamp: datetime = Field(default_factory=_now)


class OrderCancelledEvent(BaseModel):
    """Event published when order is cancelled"""
    order_id: str
    buyer_id: str
    vendor_id: str
    reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)
