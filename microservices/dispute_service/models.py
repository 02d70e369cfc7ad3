"""
Dispute Service Data Models
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field


class DisputeStatus(str, Enum):
    """Dispute lifecycle"""
    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    CLOSED = "closed"


class DisputeType(str, Enum):
    NON_DELIVERY = "non_delivery"
    WRONG_ITEM = "wrong_item"
    DAMAGED_ITEM = "damaged_item"
    QUALITY_ISSUE = "quality_issue"
    OTHER = "other"


class FiledByType(str, Enum):
    BUYER = "buyer"
    VENDOR = "vendor"


class DisputeOutcome(str, Enum):
    """What happens to the escrowed funds"""
    RELEASE_TO_VENDOR = "release_to_vendor"
    REFUND_TO_BUYER = "refund_to_buyer"


DISPUTE_TRANSITIONS: Dict[DisputeStatus, Set[DisputeStatus]] = {
    DisputeStatus.OPEN: {DisputeStatus.INVESTIGATING, DisputeStatus.RESOLVED},
    DisputeStatus.INVESTIGATING: {DisputeStatus.RESOLVED, DisputeStatus.CLOSED},
    DisputeStatus.RESOLVED: set(),
    DisputeStatus.CLOSED: set(),
}

ACTIVE_DISPUTE_STATUSES = {DisputeStatus.OPEN, DisputeStatus.INVESTIGATING}


class Dispute(BaseModel):
    """Dispute filed against an order"""
    id: str
    order_id: str
    escrow_transaction_id: Optional[str] = None
    filed_by: str
    filed_by_type: FiledByType
    dispute_type: DisputeType
    description: str
    evidence_urls: List[str] = []
    status: DisputeStatus = DisputeStatus.OPEN
    outcome: Optional[DisputeOutcome] = None
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None
    investigated_by: Optional[str] = None
    admin_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# Request Models

class DisputeCreateRequest(BaseModel):
    """File a dispute against an order"""
    filed_by: str
    filed_by_type: FiledByType
    dispute_type: DisputeType
    description: str = Field(..., min_length=1)
    evidence_urls: List[str] = []


class DisputeInvestigateRequest(BaseModel):
    admin_id: str
    notes: Optional[str] = None


class DisputeResolveRequest(BaseModel):
    """Manual adjudication"""
    resolution: str = Field(..., min_length=1)
    outcome: DisputeOutcome
    resolved_by: Optional[str] = None


class DisputeCloseRequest(BaseModel):
    """Dismiss a dispute after investigation; funds go to the vendor"""
    resolution: str = Field(..., min_length=1)
    closed_by: Optional[str] = None


class DisputeListResponse(BaseModel):
    disputes: List[Dispute]
    count: int
