"""
Wallet Service Models

Vendor wallet aggregate and its append-only transaction ledger
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class TransactionType(str, Enum):
    """Transaction types for wallet operations"""
    SALE = "sale"
    REFUND = "refund"
    PAYOUT = "payout"
    FEE = "fee"


class TransactionStatus(str, Enum):
    """Wallet transaction status"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"


class BankAccount(BaseModel):
    """Payout destination, validated at the boundary"""
    model_config = ConfigDict(frozen=True)

    bank_name: str = Field(..., min_length=1)
    bank_code: Optional[str] = None
    account_number: str = Field(..., pattern=r"^\d{10}$")
    account_name: str = Field(..., min_length=1)


class VendorWallet(BaseModel):
    """
    Vendor wallet aggregate.

    `wallet_version` increments on every balance change and equals the
    `sequence` of the latest WalletTransaction. `pending_transaction` holds
    a ledger entry whose balance change is applied but whose append has not
    been confirmed yet.
    """
    id: str
    business_name: Optional[str] = None
    wallet_balance: Decimal = Decimal("0")
    wallet_version: int = 0
    bank_account: Optional[BankAccount] = None
    pending_transaction_id: Optional[str] = None
    pending_transaction: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime


class WalletTransaction(BaseModel):
    """Wallet transaction record"""
    id: str
    vendor_id: str
    transaction_type: TransactionType
    amount: Decimal
    balance_after: Decimal
    reference: str
    description: Optional[str] = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    sequence: int
    created_at: datetime
    updated_at: Optional[datetime] = None


# Request Models

class WalletRegisterRequest(BaseModel):
    """Open a wallet for a vendor"""
    vendor_id: str
    business_name: Optional[str] = None
    bank_account: Optional[BankAccount] = None


class BankAccountUpdateRequest(BaseModel):
    """Save the vendor's payout bank account"""
    bank_account: BankAccount


# Response Models

class WalletBalanceResponse(BaseModel):
    """Balance and payout method of a vendor"""
    vendor_id: str
    wallet_balance: Decimal
    has_payout_method: bool


class WalletTransactionListResponse(BaseModel):
    """Ledger entries of a vendor, newest first"""
    vendor_id: str
    transactions: List[WalletTransaction]
    count: int
