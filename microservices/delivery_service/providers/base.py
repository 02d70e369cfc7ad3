"""Courier gateway interface."""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict

from ..models import CourierQuote, CourierShipment, CourierTracking


class CourierGateway(ABC):
    """
    Abstract courier gateway.

    Implementations raise core.errors.DependencyError when the courier is
    unreachable, times out or rejects the request.
    """

    name: str = "courier"

    @abstractmethod
    async def quote(
        self,
        pickup_city: str,
        pickup_state: str,
        delivery_city: str,
        delivery_state: str,
        weight_kg: Decimal,
        delivery_type: str,
    ) -> CourierQuote:
        """Price a shipment."""
        raise NotImplementedError

    @abstractmethod
    async def create_shipment(self, order_id: str, shipment: Dict[str, Any]) -> CourierShipment:
        """Book a shipment."""
        raise NotImplementedError

    @abstractmethod
    async def track(self, tracking_number: str) -> CourierTracking:
        """Current status and scan history."""
        raise NotImplementedError

    @abstractmethod
    async def cancel(self, shipment_id: str, reason: str) -> bool:
        """Cancel a booked shipment."""
        raise NotImplementedError

    async def close(self):
        return None
