"""
Dispute Service Event Models
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DisputeStatusChangedEvent(BaseModel):
    """Published when a dispute moves to investigating, resolved or closed"""
    dispute_id: str
    order_id: str
    status: str
    outcome: Optional[str] = None
    actor_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)
