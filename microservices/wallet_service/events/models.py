"""
Wallet Service Event Models
"""

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, Field


class WalletBalanceChangedEvent(BaseModel):
    """Published for every applied wallet delta"""
    vendor_id: str
    transaction_id: str
    transaction_type: str
    amount: Decimal
    balance_after: Decimal
    reference: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
