"""GIG Logistics courier gateway over HTTP."""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from core.errors import DependencyError

from ..models import CourierQuote, CourierShipment, CourierTracking, CourierTrackingEvent
from .base import CourierGateway

logger = logging.getLogger(__name__)


class GIGLCourierGateway(CourierGateway):
    """
    GIGL API client.

    Every request is bounded by `timeout`. Read-only calls (quote, track)
    retry transport errors until that deadline passes; booking and
    cancellation are sent once.
    """

    name = "gigl"

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 15.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.AsyncClient(timeout=timeout, headers=headers)
        logger.info(f"GIGLCourierGateway initialized with base_url: {self.base_url}")

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, f"{self.base_url}{path}", json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise DependencyError(
                f"GIGL {method} {path} timed out after {self.timeout}s",
                user_message="Courier service is not responding, please try again",
            ) from e
        except httpx.HTTPStatusError as e:
            raise DependencyError(
                f"GIGL {method} {path} returned {e.response.status_code}: {e.response.text[:200]}",
                user_message="Courier service rejected the request",
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise DependencyError(
                f"GIGL {method} {path} failed: {e}",
                user_message="Courier service is unavailable, please try again",
            ) from e

        if isinstance(body, dict) and body.get("success") is False:
            raise DependencyError(
                f"GIGL {method} {path} error: {body.get('error')}",
                user_message="Courier service rejected the request",
            )
        return body.get("data", body) if isinstance(body, dict) else {"items": body}

    async def _request_with_retry(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None):
        @retry(
            stop=(stop_after_attempt(3) | stop_after_delay(self.timeout)),
            wait=wait_exponential(multiplier=0.5, max=4),
            retry=retry_if_exception_type(DependencyError),
            reraise=True,
        )
        async def _retry_wrapper():
            return await self._request(method, path, payload)

        try:
            return await _retry_wrapper()
        except DependencyError as e:
            logger.error(f"GIGL {method} {path} failed after retries: {e.message}")
            raise

    async def quote(self, pickup_city, pickup_state, delivery_city, delivery_state, weight_kg, delivery_type) -> CourierQuote:
        data = await self._request_with_retry("POST", "/v1/quotes", {
            "pickupCity": pickup_city,
            "pickupState": pickup_state,
            "deliveryCity": delivery_city,
            "deliveryState": delivery_state,
            "weight": float(weight_kg),
            "deliveryType": delivery_type,
        })
        return CourierQuote(
            estimated_cost=Decimal(str(data.get("estimatedCost", data.get("price")))),
            estimated_days=int(data.get("estimatedDays", 3)),
            zone_code=data.get("zoneCode"),
        )

    async def create_shipment(self, order_id: str, shipment: Dict[str, Any]) -> CourierShipment:
        data = await self._request("POST", "/v1/shipments", {"orderId": order_id, **shipment})
        logger.info(f"GIGL shipment {data.get('shipmentId')} booked for order {order_id}")
        return CourierShipment(
            shipment_id=str(data["shipmentId"]),
            tracking_number=str(data["trackingNumber"]),
            tracking_url=data.get("trackingUrl"),
            estimated_delivery_date=data.get("estimatedDeliveryDate"),
            cost=Decimal(str(data["cost"])) if data.get("cost") is not None else None,
            raw=data,
        )

    async def track(self, tracking_number: str) -> CourierTracking:
        data = await self._request_with_retry("GET", f"/v1/shipments/{tracking_number}/tracking")
        return CourierTracking(
            tracking_number=tracking_number,
            status=data["status"],
            current_location=data.get("currentLocation", data.get("location")),
            history=[
                CourierTrackingEvent(
                    status=event["status"],
                    location=event.get("location"),
                    timestamp=event.get("timestamp"),
                    notes=event.get("notes"),
                )
                for event in data.get("history", [])
            ],
        )

    async def cancel(self, shipment_id: str, reason: str) -> bool:
        await self._request("POST", f"/v1/shipments/{shipment_id}/cancel", {"reason": reason})
        logger.info(f"GIGL shipment {shipment_id} cancelled")
        return True
