"""Mock courier gateway for development and tests."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict
from uuid import uuid4

from core.money import to_money

from ..models import CourierQuote, CourierShipment, CourierTracking, CourierTrackingEvent
from .base import CourierGateway

MOCK_BASE_PRICE = Decimal("1500")
MOCK_PRICE_PER_KG = Decimal("500")
MOCK_DELIVERY_DAYS = 3


class MockCourierGateway(CourierGateway):
    """Deterministic pricing, random shipment ids, every parcel in transit."""

    name = "mock"

    async def quote(self, pickup_city, pickup_state, delivery_city, delivery_state, weight_kg, delivery_type) -> CourierQuote:
        return CourierQuote(
            estimated_cost=to_money(MOCK_BASE_PRICE + MOCK_PRICE_PER_KG * Decimal(str(weight_kg))),
            estimated_days=MOCK_DELIVERY_DAYS,
            zone_code="LG",
        )

    async def create_shipment(self, order_id: str, shipment: Dict[str, Any]) -> CourierShipment:
        tracking_number = f"MOCK-{uuid4().hex[:10].upper()}"
        return CourierShipment(
            shipment_id=f"SH-{uuid4().hex[:12]}",
            tracking_number=tracking_number,
            tracking_url=f"https://track.example.com/{tracking_number}",
            estimated_delivery_date=datetime.now(timezone.utc) + timedelta(days=MOCK_DELIVERY_DAYS),
            raw={"order_id": order_id, "provider": self.name},
        )

    async def track(self, tracking_number: str) -> CourierTracking:
        now = datetime.now(timezone.utc)
        return CourierTracking(
            tracking_number=tracking_number,
            status="in_transit",
            current_location="Lagos Hub",
            history=[
                CourierTrackingEvent(status="picked_up", location="Vendor Shop", timestamp=now),
                CourierTrackingEvent(status="in_transit", location="Lagos Hub", timestamp=now),
            ],
        )

    async def cancel(self, shipment_id: str, reason: str) -> bool:
        return True
