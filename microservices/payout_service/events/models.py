"""
Payout Service Event Models
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PayoutEvent(BaseModel):
    """Payload of payout.requested / payout.completed / payout.failed"""
    payout_id: str
    vendor_id: str
    amount: Decimal
    status: str
    transfer_reference: str
    failure_reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)
