"""
Delivery Service Data Models

Deliveries mirror a courier shipment; every status change appends a
DeliveryStatusHistory row.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from microservices.order_service.models import DeliveryType


class DeliveryStatus(str, Enum):
    """Delivery status enumeration"""
    PICKUP_SCHEDULED = "pickup_scheduled"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"
    RETURNED = "returned"
    CANCELLED = "cancelled"


class StatusSource(str, Enum):
    """Who reported a status change"""
    SYSTEM = "system"
    VENDOR = "vendor"
    BUYER = "buyer"
    GIGL_WEBHOOK = "gigl_webhook"
    COURIER_POLL = "courier_poll"


DELIVERY_TRANSITIONS: Dict[DeliveryStatus, Set[DeliveryStatus]] = {
    DeliveryStatus.PICKUP_SCHEDULED: {
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
        DeliveryStatus.CANCELLED,
    },
    DeliveryStatus.IN_TRANSIT: {
        DeliveryStatus.OUT_FOR_DELIVERY,
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
        DeliveryStatus.CANCELLED,
    },
    DeliveryStatus.OUT_FOR_DELIVERY: {
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
        DeliveryStatus.CANCELLED,
    },
    DeliveryStatus.FAILED: {DeliveryStatus.RETURNED, DeliveryStatus.CANCELLED},
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.RETURNED: set(),
    DeliveryStatus.CANCELLED: set(),
}

TERMINAL_DELIVERY_STATUSES = {DeliveryStatus.DELIVERED, DeliveryStatus.RETURNED, DeliveryStatus.CANCELLED}

# Courier vocabulary -> delivery status
COURIER_STATUS_MAP: Dict[str, DeliveryStatus] = {
    "picked_up": DeliveryStatus.PICKUP_SCHEDULED,
    "pickup_scheduled": DeliveryStatus.PICKUP_SCHEDULED,
    "in_transit": DeliveryStatus.IN_TRANSIT,
    "out_for_delivery": DeliveryStatus.OUT_FOR_DELIVERY,
    "delivered": DeliveryStatus.DELIVERED,
    "failed": DeliveryStatus.FAILED,
    "returned": DeliveryStatus.RETURNED,
}


# Value types

class DeliveryAddress(BaseModel):
    """Address snapshot taken when the shipment is booked"""
    model_config = ConfigDict(frozen=True)

    full_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address_line1: str = Field(..., min_length=1)
    address_line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postal_code: Optional[str] = None


class PackageDimensions(BaseModel):
    """Parcel size in centimetres"""
    model_config = ConfigDict(frozen=True)

    length: Decimal = Field(..., gt=0)
    width: Decimal = Field(..., gt=0)
    height: Decimal = Field(..., gt=0)


class PackageDetails(BaseModel):
    weight: Decimal = Field(..., gt=0)
    dimensions: Optional[PackageDimensions] = None
    description: str = ""
    value: Decimal = Field(default=Decimal("0"), ge=0)


# Core models

class Delivery(BaseModel):
    """Courier shipment for one order"""
    id: str
    order_id: str
    vendor_id: str
    buyer_id: str
    courier_shipment_id: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    pickup_address: DeliveryAddress
    delivery_address: DeliveryAddress
    package_weight: Decimal
    package_dimensions: Optional[PackageDimensions] = None
    package_value: Decimal = Decimal("0")
    delivery_type: DeliveryType = DeliveryType.STANDARD
    delivery_status: DeliveryStatus = DeliveryStatus.PICKUP_SCHEDULED
    delivery_cost: Decimal = Decimal("0")
    estimated_delivery_date: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    last_status_update: Optional[datetime] = None
    proof_of_delivery_url: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_signature_url: Optional[str] = None
    delivery_notes: Optional[str] = None
    courier_response: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime


class DeliveryStatusHistory(BaseModel):
    """Append-only status log entry"""
    id: str
    delivery_id: str
    status: DeliveryStatus
    location: Optional[str] = None
    notes: Optional[str] = None
    updated_by: StatusSource = StatusSource.SYSTEM
    created_at: datetime


class DeliveryZone(BaseModel):
    """Fallback tariff for a destination state"""
    id: str
    state: str
    base_rate: Decimal
    per_kg_rate: Decimal
    express_multiplier: Decimal = Decimal("1.5")
    is_active: bool = True


# Courier gateway results

class CourierQuote(BaseModel):
    estimated_cost: Decimal
    estimated_days: int
    zone_code: Optional[str] = None


class CourierShipment(BaseModel):
    shipment_id: str
    tracking_number: str
    tracking_url: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    cost: Optional[Decimal] = None
    raw: Dict[str, Any] = {}


class CourierTrackingEvent(BaseModel):
    status: str
    location: Optional[str] = None
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


class CourierTracking(BaseModel):
    tracking_number: str
    status: str
    current_location: Optional[str] = None
    history: List[CourierTrackingEvent] = []


# Request Models

class DeliveryCreateRequest(BaseModel):
    """Book a courier shipment for a confirmed order"""
    order_id: str
    pickup_address: DeliveryAddress
    delivery_address: DeliveryAddress
    package: PackageDetails
    delivery_type: DeliveryType = DeliveryType.STANDARD
    delivery_cost: Decimal = Field(default=Decimal("0"), ge=0)
    delivery_notes: Optional[str] = None


class DeliveryStatusUpdateRequest(BaseModel):
    status: DeliveryStatus
    location: Optional[str] = None
    notes: Optional[str] = None
    updated_by: StatusSource = StatusSource.VENDOR


class CourierWebhookPayload(BaseModel):
    """Status push from the courier"""
    tracking_number: str
    status: str
    location: Optional[str] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


class DeliveryCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class DeliveryCostRequest(BaseModel):
    pickup_city: str
    pickup_state: str
    delivery_city: str
    delivery_state: str
    weight_kg: Decimal = Field(..., gt=0)
    delivery_type: DeliveryType = DeliveryType.STANDARD


# Response Models

class DeliveryCostResponse(BaseModel):
    cost: Decimal
    source: str
    estimated_days: Optional[int] = None


class DeliveryTrackingResponse(BaseModel):
    delivery: Delivery
    history: List[DeliveryStatusHistory]


class ServiceAvailabilityResponse(BaseModel):
    state: str
    available: bool


class UploadedImage(BaseModel):
    """Image received from the vendor app"""
    filename: str = Field(..., min_length=1)
    content: bytes
    content_type: str = "image/jpeg"
