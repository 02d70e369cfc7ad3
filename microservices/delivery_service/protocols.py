"""
Delivery Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from core.errors import ConflictError, NotFoundError, ValidationError

from .models import Delivery, DeliveryStatus, DeliveryStatusHistory, DeliveryZone


# ============================================================================
# Custom Exceptions
# ============================================================================

class DeliveryNotFoundError(NotFoundError):
    """Delivery not found error"""

    def __init__(self, key: str):
        super().__init__(f"Delivery not found: {key}", user_message="Delivery not found")


class InvalidDeliveryStateError(ConflictError):
    """Delivery cannot move to the requested status"""
    pass


class DeliveryValidationError(ValidationError):
    pass


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class DeliveryRepositoryProtocol(Protocol):
    """Interface for the delivery repository"""

    async def create_delivery(self, delivery: Delivery) -> Delivery:
        ...

    async def get_delivery(self, delivery_id: str) -> Optional[Delivery]:
        ...

    async def get_delivery_by_order(self, order_id: str) -> Optional[Delivery]:
        ...

    async def get_delivery_by_tracking_number(self, tracking_number: str) -> Optional[Delivery]:
        ...

    async def update_delivery(
        self,
        delivery_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[DeliveryStatus] = None,
    ) -> Optional[Delivery]:
        ...

    async def add_status_history(self, entry: DeliveryStatusHistory) -> DeliveryStatusHistory:
        ...

    async def get_status_history(self, delivery_id: str) -> List[DeliveryStatusHistory]:
        ...

    async def get_zone(self, state: str) -> Optional[DeliveryZone]:
        ...


# ============================================================================
# Collaborator Protocols
# ============================================================================

@runtime_checkable
class ObjectStorageProtocol(Protocol):
    """Bucket upload returning a public URL"""

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        ...


@runtime_checkable
class OrderTrackingProtocol(Protocol):
    """Order operations the delivery tracker drives"""

    async def get_order(self, order_id: str):
        ...

    async def transition_status(self, order_id: str, new_status, fields=None):
        ...
