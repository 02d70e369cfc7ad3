"""
Courier and Object Storage Mocks for Component Testing

Wrap the deterministic mock gateway with call recording and failure
injection so tests can simulate courier and storage outages.
"""
from typing import Any, Dict, List, Optional

from core.errors import DependencyError
from microservices.delivery_service.models import CourierTracking
from microservices.delivery_service.providers import MockCourierGateway


class MockCourier(MockCourierGateway):
    """MockCourierGateway with configurable failures"""

    name = "test-courier"

    def __init__(self):
        self.calls: List[tuple] = []
        self.fail_operations: Dict[str, Exception] = {}
        self.tracking_status = "in_transit"
        self.closed = False

    def fail(self, operation: str, error: Optional[Exception] = None):
        self.fail_operations[operation] = error or DependencyError(f"Courier {operation} unavailable")

    def recover(self):
        self.fail_operations.clear()

    def _check(self, operation: str, *args):
        self.calls.append((operation,) + args)
        if operation in self.fail_operations:
            raise self.fail_operations[operation]

    async def quote(self, pickup_city, pickup_state, delivery_city, delivery_state, weight_kg, delivery_type):
        self._check("quote", delivery_state, weight_kg, delivery_type)
        return await super().quote(pickup_city, pickup_state, delivery_city, delivery_state, weight_kg, delivery_type)

    async def create_shipment(self, order_id: str, shipment: Dict[str, Any]):
        self._check("create_shipment", order_id)
        return await super().create_shipment(order_id, shipment)

    async def track(self, tracking_number: str):
        self._check("track", tracking_number)
        return CourierTracking(tracking_number=tracking_number, status=self.tracking_status)

    async def cancel(self, shipment_id: str, reason: str) -> bool:
        self._check("cancel", shipment_id)
        return True

    async def close(self):
        self.closed = True


class MockStorage:
    """Mock for StorageClient"""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.fail_prefixes: List[str] = []

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        if any(path.startswith(prefix) for prefix in self.fail_prefixes):
            raise DependencyError(f"Storage rejected {bucket}/{path}")
        self.objects[f"{bucket}/{path}"] = content
        return f"https://storage.test/{bucket}/{path}"

    async def close(self):
        pass
