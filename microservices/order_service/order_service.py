"""
Order Service Business Logic

Creates orders with their line-item snapshots and owns the order status
state machine. Other settlement services move orders forward only through
`transition_status` and `restore_after_dispute`.
"""

import logging
import secrets
import string
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.config import SettlementConfig
from core.errors import DependencyError
from core.money import to_money

from .models import (
    CANCELLABLE_ORDER_STATUSES,
    ORDER_TRANSITIONS,
    Order,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    PaymentTransaction,
)
from .protocols import (
    InvalidOrderStateError,
    OrderNotFoundError,
    OrderRepositoryProtocol,
    OrderValidationError,
)
from .events.publishers import (
    publish_order_cancelled,
    publish_order_created,
    publish_order_paid,
    publish_order_status_changed,
)

logger = logging.getLogger(__name__)

_ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


class OrderService:
    """
    Order management business logic service

    Handles order creation and the order lifecycle.
    """

    def __init__(
        self,
        repository: OrderRepositoryProtocol,
        event_bus=None,
        config: Optional[SettlementConfig] = None,
    ):
        """
        Initialize Order Service

        Args:
            repository: Order repository (dependency injection)
            event_bus: NATS event bus instance (optional)
            config: Settlement settings (order number prefix)
        """
        self.repository = repository
        self.event_bus = event_bus
        self.config = config or SettlementConfig()

        logger.info("✅ OrderService initialized")

    # ====================
    # Order Lifecycle Operations
    # ====================

    async def create_order(self, request: OrderCreateRequest) -> OrderCreateResponse:
        """
        Create an order and its line items.

        Business Rules:
        - total = sum(unit_price * quantity) + delivery cost, computed here
        - Order starts pending with payment pending
        - If any item insert fails, inserted items and the order are deleted
          before the error is surfaced; no order is left without items

        Args:
            request: Order creation request from checkout

        Returns:
            Order id, order number and computed total

        Raises:
            OrderValidationError: Empty order, bad quantity or price
            DependencyError: Ledger store failure (after compensation)
        """
        self._validate_order_create_request(request)

        now = datetime.now(timezone.utc)
        order_id = str(uuid.uuid4())

        line_totals = [to_money(item.unit_price * item.quantity) for item in request.items]
        subtotal = to_money(sum(line_totals, Decimal("0")))
        shipping_fee = to_money(request.delivery_cost)

        order = Order(
            id=order_id,
            order_number=self._generate_order_number(),
            buyer_id=request.buyer_id,
            vendor_id=request.vendor_id,
            delivery_address_id=request.delivery_address_id,
            delivery_type=request.delivery_type,
            status=OrderStatus.PENDING,
            subtotal=subtotal,
            shipping_fee=shipping_fee,
            total=subtotal + shipping_fee,
            payment_status=PaymentStatus.PENDING,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )
        await self.repository.create_order(order)

        inserted: List[str] = []
        try:
            for line, line_total in zip(request.items, line_totals):
                item = OrderItem(
                    id=str(uuid.uuid4()),
                    order_id=order_id,
                    product_id=line.product_id,
                    product_title=line.title,
                    product_image=line.image_url,
                    quantity=line.quantity,
                    unit_price=to_money(line.unit_price),
                    total_price=line_total,
                    created_at=now,
                )
                await self.repository.add_item(item)
                inserted.append(item.id)
        except Exception as e:
            logger.error(f"Item insert failed for order {order.order_number}, rolling back: {e}")
            await self._compensate_order(order_id, inserted)
            if isinstance(e, DependencyError):
                raise
            raise DependencyError(
                f"Failed to create order items: {e}",
                user_message="Could not place your order, please try again",
            ) from e

        logger.info(f"Order {order.order_number} created for buyer {order.buyer_id} (total {order.total})")
        await publish_order_created(self.event_bus, order, len(inserted))

        return OrderCreateResponse(order_id=order.id, order_number=order.order_number, total=order.total)

    async def update_order_payment_status(
        self,
        order_id: str,
        status: PaymentStatus,
        reference: str,
        method: Optional[str] = None,
    ) -> Order:
        """
        Record a payment capture or refund.

        paid moves a pending order to confirmed; refunded cancels the order.

        Raises:
            OrderNotFoundError: Unknown order
            OrderValidationError: Status other than paid/refunded
            InvalidOrderStateError: "Order already confirmed", or the order can
                no longer be cancelled
        """
        if status not in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            raise OrderValidationError(f"Unsupported payment status: {status.value}")

        order = await self.get_order(order_id)
        now = datetime.now(timezone.utc)

        if status == PaymentStatus.PAID:
            if order.payment_status == PaymentStatus.PAID or order.status != OrderStatus.PENDING:
                raise InvalidOrderStateError(
                    f"Order {order_id} is {order.status.value}, payment already recorded",
                    user_message="Order already confirmed",
                )
            updated = await self.repository.update_order(
                order_id,
                {
                    "payment_status": PaymentStatus.PAID.value,
                    "payment_reference": reference,
                    "payment_method": method,
                    "status": OrderStatus.CONFIRMED.value,
                    "paid_at": now,
                    "updated_at": now,
                },
                expected_status=OrderStatus.PENDING,
            )
            if updated is None:
                raise InvalidOrderStateError(
                    f"Order {order_id} changed while recording payment",
                    user_message="Order already confirmed",
                )
            await self.repository.record_payment(
                PaymentTransaction(
                    id=str(uuid.uuid4()),
                    order_id=order_id,
                    reference=reference,
                    method=method,
                    amount=updated.total,
                    status=PaymentStatus.PAID,
                    created_at=now,
                )
            )
            logger.info(f"Order {order.order_number} paid ({reference}), now confirmed")
            await publish_order_paid(self.event_bus, updated)
            await publish_order_status_changed(self.event_bus, updated, order.status.value)
            return updated

        if order.status not in CANCELLABLE_ORDER_STATUSES:
            raise InvalidOrderStateError(
                f"Order {order_id} is {order.status.value} and cannot be refunded directly",
                user_message="This order can no longer be cancelled",
            )
        updated = await self.repository.update_order(
            order_id,
            {
                "payment_status": PaymentStatus.REFUNDED.value,
                "payment_reference": reference,
                "status": OrderStatus.CANCELLED.value,
                "cancelled_at": now,
                "updated_at": now,
            },
            expected_status=order.status,
        )
        if updated is None:
            raise InvalidOrderStateError(
                f"Order {order_id} changed while recording refund",
                user_message="Order was updated, please refresh and try again",
            )
        logger.info(f"Order {order.order_number} refunded ({reference}), now cancelled")
        await publish_order_cancelled(self.event_bus, updated, "refunded")
        return updated

    async def transition_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        fields: Optional[Dict[str, Any]] = None,
        expected_status: Optional[OrderStatus] = None,
    ) -> Order:
        """
        Move an order along its state machine.

        Re-applying the current status is a no-op unless expected_status is
        given, in which case the order must still be in that status. The
        write is a compare-and-set on the status that was read, so two
        racing callers cannot both apply conflicting transitions.

        Raises:
            OrderNotFoundError: Unknown order
            InvalidOrderStateError: Transition not allowed from current status,
                or the order left expected_status
        """
        order = await self.get_order(order_id)
        if expected_status is not None and order.status != expected_status:
            raise InvalidOrderStateError(
                f"Order {order_id} is {order.status.value}, expected {expected_status.value}",
                user_message=f"Order is already {order.status.value}",
            )
        if order.status == new_status:
            return order

        if new_status not in ORDER_TRANSITIONS[order.status]:
            raise InvalidOrderStateError(
                f"Order {order_id} cannot move from {order.status.value} to {new_status.value}",
                user_message=f"Order is already {order.status.value}",
            )

        now = datetime.now(timezone.utc)
        updates: Dict[str, Any] = dict(fields or {})
        updates["status"] = new_status.value
        updates["updated_at"] = now
        if new_status == OrderStatus.DELIVERED:
            updates.setdefault("delivered_at", now)
        elif new_status == OrderStatus.CANCELLED:
            updates.setdefault("cancelled_at", now)
        elif new_status == OrderStatus.DISPUTED:
            updates["status_before_dispute"] = order.status.value

        updated = await self.repository.update_order(order_id, updates, expected_status=order.status)
        if updated is None:
            raise InvalidOrderStateError(
                f"Order {order_id} changed concurrently (was {order.status.value})",
                user_message="Order was updated, please refresh and try again",
            )

        logger.info(f"Order {order.order_number}: {order.status.value} -> {new_status.value}")
        await publish_order_status_changed(self.event_bus, updated, order.status.value)
        return updated

    async def restore_after_dispute(self, order_id: str, refunded: bool, reason: Optional[str] = None) -> Order:
        """
        Move a disputed order out of `disputed` once its escrow is settled.

        A refund cancels the order; a release restores the status it had
        when the dispute was opened. Only the escrow settlement path calls this.
        """
        order = await self.get_order(order_id)
        if order.status != OrderStatus.DISPUTED:
            return order

        now = datetime.now(timezone.utc)
        if refunded:
            updates: Dict[str, Any] = {
                "status": OrderStatus.CANCELLED.value,
                "payment_status": PaymentStatus.REFUNDED.value,
                "cancelled_at": now,
                "cancellation_reason": reason,
            }
        else:
            previous = order.status_before_dispute or OrderStatus.CONFIRMED
            updates = {"status": previous.value}
        updates["status_before_dispute"] = None
        updates["updated_at"] = now

        updated = await self.repository.update_order(order_id, updates, expected_status=OrderStatus.DISPUTED)
        if updated is None:
            raise InvalidOrderStateError(f"Order {order_id} changed while settling dispute")

        logger.info(f"Order {order.order_number} left dispute as {updated.status.value}")
        await publish_order_status_changed(self.event_bus, updated, OrderStatus.DISPUTED.value)
        return updated

    async def cancel_order(self, order_id: str, reason: str, cancelled_by: Optional[str] = None) -> Order:
        """
        Cancel an unpaid order that has not shipped yet.

        Paid orders hold money in escrow and are cancelled by refunding it,
        which also records the refund on the order.
        """
        order = await self.get_order(order_id)
        if order.status not in CANCELLABLE_ORDER_STATUSES:
            raise InvalidOrderStateError(
                f"Order {order_id} is {order.status.value} and cannot be cancelled",
                user_message="This order can no longer be cancelled",
            )
        if order.payment_status == PaymentStatus.PAID:
            raise InvalidOrderStateError(
                f"Order {order_id} is paid, cancel it through an escrow refund",
                user_message="Paid orders are cancelled by refunding the escrow",
            )
        updated = await self.transition_status(
            order_id, OrderStatus.CANCELLED, {"cancellation_reason": reason}, expected_status=order.status
        )
        logger.info(f"Order {order.order_number} cancelled by {cancelled_by or 'unknown'}: {reason}")
        await publish_order_cancelled(self.event_bus, updated, reason)
        return updated

    # ====================
    # Queries
    # ====================

    async def get_order(self, order_id: str) -> Order:
        order = await self.repository.get_order(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    async def get_order_items(self, order_id: str) -> List[OrderItem]:
        await self.get_order(order_id)
        return await self.repository.get_items(order_id)

    async def list_orders(
        self,
        buyer_id: Optional[str] = None,
        vendor_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
    ) -> List[Order]:
        return await self.repository.list_orders(buyer_id, vendor_id, status, limit)

    # ====================
    # Helpers
    # ====================

    def _validate_order_create_request(self, request: OrderCreateRequest):
        if not request.items:
            raise OrderValidationError("Order must contain at least one item")
        if request.buyer_id == request.vendor_id:
            raise OrderValidationError("Vendors cannot order their own products")
        for item in request.items:
            if item.quantity < 1:
                raise OrderValidationError(f"Quantity must be at least 1 for product {item.product_id}")
            if item.unit_price <= 0:
                raise OrderValidationError(f"Unit price must be positive for product {item.product_id}")
        if request.delivery_cost < 0:
            raise OrderValidationError("Delivery cost cannot be negative")

    def _generate_order_number(self) -> str:
        suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(6))
        return f"{self.config.order_number_prefix}-{int(time.time() * 1000)}-{suffix}"

    async def _compensate_order(self, order_id: str, item_ids: List[str]):
        """Delete a just-created order and the items inserted so far"""
        for item_id in item_ids:
            try:
                await self.repository.delete_item(item_id)
            except Exception as e:
                logger.error(f"Compensation failed deleting item {item_id} of order {order_id}: {e}")
        try:
            await self.repository.delete_order(order_id)
        except Exception as e:
            logger.error(f"Compensation failed deleting order {order_id}: {e}")
