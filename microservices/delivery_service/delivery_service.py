"""
Delivery Service Business Logic

Books courier shipments and mirrors the courier's view of a parcel into
Delivery records. Status changes arrive from the courier webhook, courier
polling, the vendor (proof of delivery) and the buyer (confirmation);
each one appends a history row and moves the order along.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from core.config import SettlementConfig
from core.errors import ConflictError, DependencyError

from microservices.order_service.models import ORDER_TRANSITIONS, DeliveryType, OrderStatus

from .models import (
    COURIER_STATUS_MAP,
    DELIVERY_TRANSITIONS,
    TERMINAL_DELIVERY_STATUSES,
    Delivery,
    DeliveryCostResponse,
    DeliveryCreateRequest,
    DeliveryStatus,
    DeliveryStatusHistory,
    DeliveryTrackingResponse,
    StatusSource,
    UploadedImage,
)
from .delivery_repository import delivery_id_for_order
from .pricing import zone_delivery_cost
from .protocols import (
    DeliveryNotFoundError,
    DeliveryRepositoryProtocol,
    DeliveryValidationError,
    InvalidDeliveryStateError,
    ObjectStorageProtocol,
    OrderTrackingProtocol,
)
from .providers.base import CourierGateway
from .events.publishers import publish_delivery_created, publish_delivery_status_changed

logger = logging.getLogger(__name__)

# Delivery status -> order status it implies
_ORDER_STATUS_FOR_DELIVERY = {
    DeliveryStatus.IN_TRANSIT: OrderStatus.SHIPPED,
    DeliveryStatus.OUT_FOR_DELIVERY: OrderStatus.SHIPPED,
    DeliveryStatus.DELIVERED: OrderStatus.DELIVERED,
}


class DeliveryService:
    """
    Delivery tracking business logic

    Courier and storage calls happen before any write, so a failed call
    leaves no partial record behind.
    """

    def __init__(
        self,
        repository: DeliveryRepositoryProtocol,
        order_service: OrderTrackingProtocol,
        courier: CourierGateway,
        storage: Optional[ObjectStorageProtocol] = None,
        event_bus=None,
        config: Optional[SettlementConfig] = None,
    ):
        """
        Initialize Delivery Service

        Args:
            repository: Delivery repository
            order_service: Order manager (status transitions)
            courier: Courier gateway adapter
            storage: Object storage for delivery proofs
            event_bus: NATS event bus instance (optional)
            config: Settlement settings (bucket, service areas)
        """
        self.repository = repository
        self.order_service = order_service
        self.courier = courier
        self.storage = storage
        self.event_bus = event_bus
        self.config = config or SettlementConfig()

        logger.info(f"✅ DeliveryService initialized (courier: {courier.name})")

    # ====================
    # Shipment booking
    # ====================

    async def create_delivery(self, request: DeliveryCreateRequest) -> Delivery:
        """
        Book a courier shipment for a confirmed order.

        Business Rules:
        - One delivery per order
        - The courier is called first; if it fails or times out nothing is
          written and DependencyError is raised
        - On success: Delivery(pickup_scheduled), a `system` history row,
          order -> processing with the tracking number

        Raises:
            OrderNotFoundError: Unknown order
            ConflictError: Order not confirmed, or already has a delivery
            DependencyError: Courier unavailable
        """
        order = await self.order_service.get_order(request.order_id)

        existing = await self.repository.get_delivery_by_order(order.id)
        if existing:
            if order.status == OrderStatus.CONFIRMED:
                # Booked earlier but the order step did not complete
                logger.warning(f"Resuming order update for existing delivery {existing.id}")
                await self._start_processing(existing)
                return existing
            raise ConflictError(
                f"Order {order.id} already has delivery {existing.id}",
                user_message="A delivery already exists for this order",
            )

        if order.status != OrderStatus.CONFIRMED:
            raise ConflictError(
                f"Order {order.id} is {order.status.value}, deliveries need a confirmed order",
                user_message="Only confirmed orders can be shipped",
            )

        shipment = await self.courier.create_shipment(order.id, {
            "vendorId": order.vendor_id,
            "pickupAddress": request.pickup_address.model_dump(mode="json"),
            "deliveryAddress": request.delivery_address.model_dump(mode="json"),
            "packageDetails": request.package.model_dump(mode="json"),
            "deliveryType": request.delivery_type.value,
            "deliveryNotes": request.delivery_notes,
        })

        now = datetime.now(timezone.utc)
        delivery = Delivery(
            id=delivery_id_for_order(order.id),
            order_id=order.id,
            vendor_id=order.vendor_id,
            buyer_id=order.buyer_id,
            courier_shipment_id=shipment.shipment_id,
            tracking_number=shipment.tracking_number,
            tracking_url=shipment.tracking_url,
            pickup_address=request.pickup_address,
            delivery_address=request.delivery_address,
            package_weight=request.package.weight,
            package_dimensions=request.package.dimensions,
            package_value=request.package.value,
            delivery_type=request.delivery_type,
            delivery_status=DeliveryStatus.PICKUP_SCHEDULED,
            delivery_cost=request.delivery_cost,
            estimated_delivery_date=shipment.estimated_delivery_date,
            last_status_update=now,
            delivery_notes=request.delivery_notes,
            courier_response=shipment.raw,
            created_at=now,
            updated_at=now,
        )
        try:
            await self.repository.create_delivery(delivery)
        except ConflictError:
            # A concurrent booking for the same order won the insert
            await self._cancel_orphan_shipment(delivery)
            raise ConflictError(
                f"Order {order.id} already has a delivery",
                user_message="A delivery already exists for this order",
            )
        await self._add_history(
            delivery.id,
            DeliveryStatus.PICKUP_SCHEDULED,
            location="Pickup location",
            notes="Shipment created and pickup scheduled",
            updated_by=StatusSource.SYSTEM,
        )
        await self._start_processing(delivery)

        logger.info(f"Delivery {delivery.id} booked for order {order.id} ({delivery.tracking_number})")
        await publish_delivery_created(self.event_bus, delivery)
        return delivery

    async def _cancel_orphan_shipment(self, delivery: Delivery):
        try:
            await self.courier.cancel(delivery.courier_shipment_id, "Duplicate booking for order")
            logger.warning(f"Cancelled duplicate shipment {delivery.tracking_number} for order {delivery.order_id}")
        except Exception as e:
            logger.error(
                f"Could not cancel duplicate shipment {delivery.tracking_number} for order {delivery.order_id}: {e}"
            )

    async def _start_processing(self, delivery: Delivery):
        await self.order_service.transition_status(
            delivery.order_id,
            OrderStatus.PROCESSING,
            {"tracking_number": delivery.tracking_number},
        )

    # ====================
    # Status updates
    # ====================

    async def update_delivery_status(
        self,
        delivery_id: str,
        status: DeliveryStatus,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        updated_by: StatusSource = StatusSource.GIGL_WEBHOOK,
        occurred_at: Optional[datetime] = None,
    ) -> Delivery:
        """
        Apply a status change and append its history row.

        Re-applying the current status changes nothing (duplicate webhooks,
        courier and buyer both reporting delivery). delivered sets
        actual_delivery_date and moves the order to delivered; in_transit
        and out_for_delivery move it to shipped.

        Raises:
            DeliveryNotFoundError: Unknown delivery
            InvalidDeliveryStateError: Transition not allowed
        """
        delivery = await self.get_delivery(delivery_id)
        if delivery.delivery_status == status:
            logger.debug(f"Delivery {delivery_id} already {status.value}, ignoring")
            return delivery

        if status not in DELIVERY_TRANSITIONS[delivery.delivery_status]:
            raise InvalidDeliveryStateError(
                f"Delivery {delivery_id} cannot move from {delivery.delivery_status.value} to {status.value}",
                user_message=f"Delivery is already {delivery.delivery_status.value}",
            )

        now = datetime.now(timezone.utc)
        updates = {
            "delivery_status": status.value,
            "last_status_update": occurred_at or now,
            "updated_at": now,
        }
        if status == DeliveryStatus.DELIVERED:
            updates["actual_delivery_date"] = occurred_at or now

        updated = await self.repository.update_delivery(
            delivery_id, updates, expected_status=delivery.delivery_status
        )
        if updated is None:
            current = await self.get_delivery(delivery_id)
            if current.delivery_status == status:
                return current
            raise InvalidDeliveryStateError(
                f"Delivery {delivery_id} changed to {current.delivery_status.value} concurrently",
                user_message="Delivery was updated, please refresh and try again",
            )

        entry = await self._add_history(delivery_id, status, location, notes, updated_by)
        logger.info(
            f"Delivery {delivery_id}: {delivery.delivery_status.value} -> {status.value} "
            f"({updated_by.value})"
        )

        order_status = _ORDER_STATUS_FOR_DELIVERY.get(status)
        if order_status:
            fields = {"delivered_at": updates["actual_delivery_date"]} if status == DeliveryStatus.DELIVERED else None
            await self._advance_order(updated.order_id, order_status, fields)

        await publish_delivery_status_changed(self.event_bus, updated, delivery.delivery_status, entry)
        return updated

    async def _advance_order(self, order_id: str, new_status: OrderStatus, fields=None):
        order = await self.order_service.get_order(order_id)
        if order.status == new_status:
            return
        if order.status == OrderStatus.DISPUTED:
            logger.info(f"Order {order_id} is disputed, not moving it to {new_status.value}")
            return
        if new_status not in ORDER_TRANSITIONS[order.status]:
            logger.warning(f"Order {order_id} is {order.status.value}, skipping move to {new_status.value}")
            return
        try:
            await self.order_service.transition_status(order_id, new_status, fields)
        except ConflictError as e:
            logger.warning(f"Order {order_id} not moved to {new_status.value}: {e.message}")

    async def handle_courier_webhook(
        self,
        tracking_number: str,
        status: str,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Delivery:
        """
        Apply a courier status push.

        Out-of-order pushes (e.g. in_transit after delivered) are logged and
        acknowledged without changing the delivery.

        Raises:
            DeliveryValidationError: Status the courier vocabulary does not know
            DeliveryNotFoundError: No delivery with this tracking number
        """
        mapped = COURIER_STATUS_MAP.get(status.strip().lower())
        if mapped is None:
            raise DeliveryValidationError(f"Unknown courier status: {status}")

        delivery = await self.repository.get_delivery_by_tracking_number(tracking_number)
        if not delivery:
            raise DeliveryNotFoundError(tracking_number)

        try:
            return await self.update_delivery_status(
                delivery.id, mapped, location, notes, StatusSource.GIGL_WEBHOOK, timestamp
            )
        except InvalidDeliveryStateError as e:
            logger.warning(f"⚠️ Ignoring courier update for {tracking_number}: {e.message}")
            return await self.get_delivery(delivery.id)

    async def refresh_tracking(self, delivery_id: str) -> Delivery:
        """
        Poll the courier for the current status.

        If the courier is unavailable or times out, the previous status is kept.
        """
        delivery = await self.get_delivery(delivery_id)
        if not delivery.tracking_number or delivery.delivery_status in TERMINAL_DELIVERY_STATUSES:
            return delivery

        try:
            tracking = await self.courier.track(delivery.tracking_number)
        except DependencyError as e:
            logger.warning(f"⚠️ Tracking poll failed for {delivery.tracking_number}, keeping status: {e.message}")
            return delivery

        mapped = COURIER_STATUS_MAP.get(tracking.status.strip().lower())
        if mapped is None:
            logger.warning(f"Courier reported unknown status '{tracking.status}' for {delivery.tracking_number}")
            return delivery

        try:
            return await self.update_delivery_status(
                delivery_id, mapped, tracking.current_location, None, StatusSource.COURIER_POLL
            )
        except InvalidDeliveryStateError as e:
            logger.warning(f"Ignoring polled status for {delivery.tracking_number}: {e.message}")
            return await self.get_delivery(delivery_id)

    async def mark_delivered_by_buyer(self, order_id: str, buyer_id: str) -> Delivery:
        """Buyer confirmed receipt; a no-op when the delivery is already delivered"""
        delivery = await self.get_delivery_by_order(order_id)
        if delivery.buyer_id != buyer_id:
            raise DeliveryValidationError(
                f"{buyer_id} is not the buyer of delivery {delivery.id}",
                user_message="Only the buyer can confirm delivery",
            )
        return await self.update_delivery_status(
            delivery.id,
            DeliveryStatus.DELIVERED,
            notes="Delivery confirmed by buyer",
            updated_by=StatusSource.BUYER,
        )

    async def upload_delivery_proof(
        self,
        delivery_id: str,
        proof_image: UploadedImage,
        recipient_name: str,
        signature_image: Optional[UploadedImage] = None,
    ) -> Delivery:
        """
        Store the vendor's proof of delivery and mark the delivery delivered.

        A failed proof upload aborts with DependencyError before anything is
        written; a failed signature upload is logged and skipped.
        """
        if self.storage is None:
            raise DependencyError("Object storage is not configured", user_message="Uploads are unavailable")
        delivery = await self.get_delivery(delivery_id)
        bucket = self.config.delivery_proof_bucket
        stamp = int(time.time() * 1000)

        proof_url = await self.storage.upload(
            bucket,
            f"delivery-proofs/{delivery_id}/{stamp}-{proof_image.filename}",
            proof_image.content,
            proof_image.content_type,
        )

        signature_url = None
        if signature_image is not None:
            try:
                signature_url = await self.storage.upload(
                    bucket,
                    f"delivery-signatures/{delivery_id}/{stamp}-{signature_image.filename}",
                    signature_image.content,
                    signature_image.content_type,
                )
            except DependencyError as e:
                logger.warning(f"⚠️ Signature upload failed for delivery {delivery_id}: {e.message}")

        await self.repository.update_delivery(
            delivery_id,
            {
                "proof_of_delivery_url": proof_url,
                "recipient_name": recipient_name,
                "recipient_signature_url": signature_url,
                "updated_at": datetime.now(timezone.utc),
            },
        )
        if delivery.delivery_status == DeliveryStatus.DELIVERED:
            return await self.get_delivery(delivery_id)
        return await self.update_delivery_status(
            delivery_id,
            DeliveryStatus.DELIVERED,
            notes=f"Delivered to {recipient_name}",
            updated_by=StatusSource.VENDOR,
        )

    async def cancel_delivery(self, delivery_id: str, reason: str) -> Delivery:
        """Cancel the courier shipment, then mark the delivery cancelled"""
        delivery = await self.get_delivery(delivery_id)
        if delivery.delivery_status == DeliveryStatus.CANCELLED:
            return delivery
        if DeliveryStatus.CANCELLED not in DELIVERY_TRANSITIONS[delivery.delivery_status]:
            raise InvalidDeliveryStateError(
                f"Delivery {delivery_id} is {delivery.delivery_status.value} and cannot be cancelled",
                user_message=f"Delivery is already {delivery.delivery_status.value}",
            )

        if delivery.courier_shipment_id:
            await self.courier.cancel(delivery.courier_shipment_id, reason)

        return await self.update_delivery_status(
            delivery_id, DeliveryStatus.CANCELLED, notes=reason, updated_by=StatusSource.SYSTEM
        )

    # ====================
    # Pricing
    # ====================

    async def calculate_delivery_cost(
        self,
        pickup_city: str,
        pickup_state: str,
        delivery_city: str,
        delivery_state: str,
        weight_kg: Decimal,
        delivery_type: DeliveryType = DeliveryType.STANDARD,
    ) -> DeliveryCostResponse:
        """
        Courier quote, falling back to the delivery zone table.

        Raises:
            DependencyError: "Unable to calculate delivery cost" when the
                courier fails and the state has no active zone
        """
        try:
            quote = await self.courier.quote(
                pickup_city, pickup_state, delivery_city, delivery_state, weight_kg, delivery_type.value
            )
            return DeliveryCostResponse(
                cost=quote.estimated_cost, source=self.courier.name, estimated_days=quote.estimated_days
            )
        except DependencyError as e:
            logger.warning(f"⚠️ Courier quote failed, using zone table for {delivery_state}: {e.message}")

        zone = await self.repository.get_zone(delivery_state)
        if zone is None:
            raise DependencyError(
                f"No courier quote and no active delivery zone for {delivery_state}",
                user_message="Unable to calculate delivery cost",
            )
        return DeliveryCostResponse(cost=zone_delivery_cost(zone, weight_kg, delivery_type), source="zone")

    def check_service_availability(self, state: str) -> bool:
        areas = {area.lower() for area in self.config.service_areas}
        return state.strip().lower() in areas

    # ====================
    # Queries
    # ====================

    async def get_delivery(self, delivery_id: str) -> Delivery:
        delivery = await self.repository.get_delivery(delivery_id)
        if not delivery:
            raise DeliveryNotFoundError(delivery_id)
        return delivery

    async def get_delivery_by_order(self, order_id: str) -> Delivery:
        delivery = await self.repository.get_delivery_by_order(order_id)
        if not delivery:
            raise DeliveryNotFoundError(f"order {order_id}")
        return delivery

    async def get_status_history(self, delivery_id: str) -> List[DeliveryStatusHistory]:
        await self.get_delivery(delivery_id)
        return await self.repository.get_status_history(delivery_id)

    async def get_tracking(self, delivery_id: str) -> DeliveryTrackingResponse:
        delivery = await self.get_delivery(delivery_id)
        history = await self.repository.get_status_history(delivery_id)
        return DeliveryTrackingResponse(delivery=delivery, history=history)

    async def _add_history(
        self,
        delivery_id: str,
        status: DeliveryStatus,
        location: Optional[str],
        notes: Optional[str],
        updated_by: StatusSource,
    ) -> DeliveryStatusHistory:
        return await self.repository.add_status_history(
            DeliveryStatusHistory(
                id=str(uuid.uuid4()),
                delivery_id=delivery_id,
                status=status,
                location=location,
                notes=notes,
                updated_by=updated_by,
                created_at=datetime.now(timezone.utc),
            )
        )
