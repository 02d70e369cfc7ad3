"""
Order Service Data Models

Pydantic models for orders, their line-item snapshots and payment records.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Set
from datetime import datetime
from decimal import Decimal
from enum import Enum


class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class PaymentStatus(str, Enum):
    """Payment status enumeration"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class DeliveryType(str, Enum):
    """Service level chosen at checkout"""
    STANDARD = "standard"
    EXPRESS = "express"
    SAME_DAY = "same_day"


# Forward transitions. `disputed` is left only through escrow settlement
# (OrderService.restore_after_dispute), never through transition_status.
ORDER_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.DISPUTED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.DISPUTED},
    OrderStatus.PROCESSING: {
        OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.DISPUTED
    },
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.DISPUTED},
    OrderStatus.DELIVERED: {OrderStatus.DISPUTED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.DISPUTED: set(),
}

TERMINAL_ORDER_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
CANCELLABLE_ORDER_STATUSES = {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING}


# Core Order Models

class OrderItem(BaseModel):
    """Line item snapshot, immutable after creation"""
    model_config = ConfigDict(frozen=True)

    id: str
    order_id: str
    product_id: str
    product_title: str
    product_image: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    created_at: datetime


class Order(BaseModel):
    """Core order model"""
    id: str
    order_number: str
    buyer_id: str
    vendor_id: str
    delivery_address_id: Optional[str] = None
    delivery_type: DeliveryType = DeliveryType.STANDARD
    status: OrderStatus
    subtotal: Decimal
    shipping_fee: Decimal
    total: Decimal
    payment_status: PaymentStatus
    payment_reference: Optional[str] = None
    payment_method: Optional[str] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    status_before_dispute: Optional[OrderStatus] = None
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class PaymentTransaction(BaseModel):
    """Record of a captured or refunded buyer payment"""
    id: str
    order_id: str
    reference: str
    method: Optional[str] = None
    amount: Decimal
    status: PaymentStatus
    created_at: datetime


# Request Models

class OrderItemInput(BaseModel):
    """Validated cart line supplied by checkout"""
    product_id: str
    title: str
    image_url: Optional[str] = None
    quantity: int
    unit_price: Decimal


class OrderCreateRequest(BaseModel):
    """Request to create an order"""
    buyer_id: str
    vendor_id: str
    items: List[OrderItemInput]
    delivery_address_id: Optional[str] = None
    delivery_type: DeliveryType = DeliveryType.STANDARD
    delivery_cost: Decimal = Decimal("0")
    notes: Optional[str] = None


class PaymentStatusUpdateRequest(BaseModel):
    """Payment capture or refund notification"""
    status: PaymentStatus
    reference: str = Field(..., min_length=1)
    method: Optional[str] = None


class OrderCancelRequest(BaseModel):
    """Request to cancel an order"""
    reason: str = Field(..., min_length=1)
    cancelled_by: Optional[str] = None


# Response Models

class OrderCreateResponse(BaseModel):
    """Result of order creation"""
    order_id: str
    order_number: str
    total: Decimal


class OrderDetailResponse(BaseModel):
    """Order with its line items"""
    order: Order
    items: List[OrderItem]


class OrderListResponse(BaseModel):
    """Order list response"""
    orders: List[Order]
    count: int
