"""
Payout Service Models

Withdrawal requests from a vendor wallet to a bank account
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field

from microservices.wallet_service.models import BankAccount


class PayoutStatus(str, Enum):
    """Payout status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


PAYOUT_TRANSITIONS: Dict[PayoutStatus, Set[PayoutStatus]] = {
    PayoutStatus.PENDING: {PayoutStatus.PROCESSING, PayoutStatus.FAILED},
    PayoutStatus.PROCESSING: {PayoutStatus.COMPLETED, PayoutStatus.FAILED},
    PayoutStatus.COMPLETED: set(),
    PayoutStatus.FAILED: set(),
}


class Payout(BaseModel):
    """Bank transfer of wallet funds"""
    id: str
    vendor_id: str
    amount: Decimal
    bank_account: BankAccount
    status: PayoutStatus = PayoutStatus.PENDING
    transfer_reference: str
    wallet_transaction_id: Optional[str] = None
    retry_of: Optional[str] = None
    requested_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    updated_at: datetime


# Request Models

class WithdrawalRequest(BaseModel):
    """Withdraw wallet funds; bank_account defaults to the saved one"""
    vendor_id: str
    amount: Decimal = Field(..., gt=0)
    bank_account: Optional[BankAccount] = None


class PayoutProcessingRequest(BaseModel):
    transfer_reference: Optional[str] = None


class PayoutCompleteRequest(BaseModel):
    transfer_reference: Optional[str] = None


class PayoutFailRequest(BaseModel):
    reason: str = Field(..., min_length=1)


# Response Models

class PayoutListResponse(BaseModel):
    vendor_id: str
    payouts: List[Payout]
    count: int
