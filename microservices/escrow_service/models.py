"""
Escrow Service Data Models

Escrow transactions held against orders and buyer release intents.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field


class EscrowStatus(str, Enum):
    """Escrow status enumeration"""
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"
    DISPUTED = "disputed"


class ReleaseType(str, Enum):
    """What triggered a release"""
    AUTO_DELIVERY = "auto_delivery"
    MANUAL_BUYER = "manual_buyer"
    ADMIN_OVERRIDE = "admin_override"
    DISPUTE_RESOLUTION = "dispute_resolution"


class ReleaseIntentStatus(str, Enum):
    PENDING = "pending"
    CONSUMED = "consumed"
    SUPERSEDED = "superseded"


ESCROW_TRANSITIONS: Dict[EscrowStatus, Set[EscrowStatus]] = {
    EscrowStatus.HELD: {EscrowStatus.RELEASED, EscrowStatus.REFUNDED, EscrowStatus.DISPUTED},
    EscrowStatus.DISPUTED: {EscrowStatus.RELEASED, EscrowStatus.REFUNDED},
    EscrowStatus.RELEASED: set(),
    EscrowStatus.REFUNDED: set(),
}

DEFAULT_RELEASE_REASONS: Dict[ReleaseType, str] = {
    ReleaseType.AUTO_DELIVERY: "Delivery confirmed by courier",
    ReleaseType.MANUAL_BUYER: "Delivery confirmed",
    ReleaseType.ADMIN_OVERRIDE: "Released by administrator",
    ReleaseType.DISPUTE_RESOLUTION: "Dispute resolved in favour of vendor",
}


class EscrowTransaction(BaseModel):
    """Money held against one order"""
    id: str
    order_id: str
    buyer_id: str
    vendor_id: str
    amount: Decimal
    vendor_amount: Decimal
    platform_fee: Decimal
    status: EscrowStatus = EscrowStatus.HELD
    payment_reference: Optional[str] = None
    release_type: Optional[ReleaseType] = None
    released_by: Optional[str] = None
    released_at: Optional[datetime] = None
    release_reason: Optional[str] = None
    wallet_transaction_id: Optional[str] = None
    release_attempt_id: Optional[str] = None
    release_claimed_until: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class EscrowRelease(BaseModel):
    """A recorded request to release escrow (e.g. buyer confirmed delivery)"""
    id: str
    escrow_transaction_id: str
    order_id: str
    release_type: ReleaseType
    buyer_confirmed_delivery: bool = False
    delivery_confirmed_at: Optional[datetime] = None
    release_requested_by: Optional[str] = None
    status: ReleaseIntentStatus = ReleaseIntentStatus.PENDING
    consumed_at: Optional[datetime] = None
    created_at: datetime


# Request Models

class EscrowHoldRequest(BaseModel):
    payment_reference: Optional[str] = None


class EscrowReleaseRequest(BaseModel):
    release_type: ReleaseType
    released_by: Optional[str] = None
    notes: Optional[str] = None


class EscrowRefundRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    refunded_by: Optional[str] = None


class DeliveryConfirmRequest(BaseModel):
    buyer_id: str


# Response Models

class EscrowReleaseResponse(BaseModel):
    """Released escrow with the wallet credit it produced"""
    escrow: EscrowTransaction
    wallet_transaction_id: str
    wallet_balance_after: Decimal


class DeliveryConfirmationResponse(BaseModel):
    order_id: str
    delivery_id: str
    release_intent: EscrowRelease
    escrow_status: EscrowStatus
    escrow_released: bool


class PendingReleaseSweepResponse(BaseModel):
    released: int
    superseded: int
    waiting: List[str]
