"""
Escrow Service Event Models
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EscrowHeldEvent(BaseModel):
    escrow_id: str
    order_id: str
    vendor_id: str
    amount: Decimal
    vendor_amount: Decimal
    platform_fee: Decimal
    timestamp: datetime = Field(default_factory=_now)


class EscrowReleasedEvent(BaseModel):
    escrow_id: str
    order_id: str
    vendor_id: str
    vendor_amount: Decimal
    release_type: str
    released_by: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class EscrowRefundedEvent(BaseModel):
    escrow_id: str
    order_id: str
    buyer_id: str
    amount: Decimal
    reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class DisputeOpenedEvent(BaseModel):
    dispute_id: str
    order_id: str
    escrow_id: Optional[str] = None
    filed_by: str
    filed_by_type: str
    dispute_type: str
    timestamp: datetime = Field(default_factory=_now)
