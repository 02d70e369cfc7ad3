"""
NATS JetStream Client for Python Microservices
Provides event-driven communication between the settlement services

Events are best-effort side channels: publishing never raises into the
business operation that triggered it.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional

import nats
from nats.errors import Error as NATSError

from .config import InfraConfig


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that keeps Decimal amounts exact"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


logger = logging.getLogger(__name__)


class EventType(Enum):
    """Settlement event types"""

    # Order Events
    ORDER_CREATED = "order.created"
    ORDER_PAID = "order.paid"
    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_CANCELLED = "order.cancelled"

    # Escrow Events
    ESCROW_HELD = "escrow.held"
    ESCROW_RELEASED = "escrow.released"
    ESCROW_REFUNDED = "escrow.refunded"

    # Wallet Events
    WALLET_CREDITED = "wallet.credited"
    WALLET_DEBITED = "wallet.debited"

    # Delivery Events
    DELIVERY_CREATED = "delivery.created"
    DELIVERY_STATUS_CHANGED = "delivery.status_changed"
    DELIVERY_DELIVERED = "delivery.delivered"

    # Payout Events
    PAYOUT_REQUESTED = "payout.requested"
    PAYOUT_COMPLETED = "payout.completed"
    PAYOUT_FAILED = "payout.failed"

    # Dispute Events
    DISPUTE_OPENED = "dispute.opened"
    DISPUTE_INVESTIGATING = "dispute.investigating"
    DISPUTE_RESOLVED = "dispute.resolved"
    DISPUTE_CLOSED = "dispute.closed"


class ServiceSource(Enum):
    """Service sources"""

    ORDER_SERVICE = "order_service"
    ESCROW_SERVICE = "escrow_service"
    WALLET_SERVICE = "wallet_service"
    DELIVERY_SERVICE = "delivery_service"
    PAYOUT_SERVICE = "payout_service"
    DISPUTE_SERVICE = "dispute_service"
    SETTLEMENT_SERVICE = "settlement_service"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: EventType,
        source: ServiceSource,
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value
        self.source = source.value
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        event = cls.__new__(cls)
        event.id = data.get("id")
        event.type = data.get("type")
        event.source = data.get("source")
        event.subject = data.get("subject")
        event.timestamp = data.get("timestamp")
        event.data = data.get("data", {})
        event.metadata = data.get("metadata", {})
        event.version = data.get("version", "1.0.0")
        return event


class NATSEventBus:
    """
    NATS JetStream event bus.

    One stream per event prefix (order-stream for order.*, escrow-stream for
    escrow.*, ...). Subscribers use durable push consumers and acknowledge
    after the handler returns.
    """

    def __init__(self, service_name: str, servers: Optional[str] = None):
        """
        Initialize NATS Event Bus.

        Args:
            service_name: Name of the service (used as connection name)
            servers: NATS server URL, defaults to NATS_URL / NATS_HOST:NATS_PORT
        """
        self.service_name = service_name
        self.servers = servers or InfraConfig.from_env().nats_servers

        self._nc = None
        self._js = None
        self._subscriptions: Dict[str, Any] = {}
        self._streams: set = set()
        self._is_connected = False

        logger.info(f"NATS EventBus initialized: {self.servers}")

    async def connect(self):
        """Connect to NATS and open a JetStream context"""
        try:
            self._nc = await nats.connect(servers=[self.servers], name=self.service_name)
            self._js = self._nc.jetstream()
            self._is_connected = True
            logger.info(f"Connected to NATS as {self.service_name}")
        except (NATSError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    async def publish_event(self, event: Event) -> bool:
        """Publish an event to its JetStream stream. Returns False on failure."""
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return False

        try:
            await self._ensure_stream(event.type)
            data = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()
            ack = await self._js.publish(event.type, data)
            logger.info(f"Published event {event.type} [{event.id}] to stream {ack.stream}, seq={ack.seq}")
            return True
        except (NATSError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Error publishing event {event.id}: {e}")
            return False

    def _get_stream_name_for_event(self, event_type: str) -> str:
        """order.paid -> order-stream"""
        prefix = event_type.split('.')[0]
        return f"{prefix}-stream"

    async def _ensure_stream(self, subject: str):
        prefix = subject.split('.')[0]
        stream_name = self._get_stream_name_for_event(subject)
        if stream_name in self._streams:
            return
        try:
            await self._js.add_stream(name=stream_name, subjects=[f"{prefix}.>"])
        except NATSError as e:
            logger.debug(f"Stream creation note: {e}")
        self._streams.add(stream_name)

    async def subscribe_to_events(
        self, pattern: str, handler: Callable, durable: Optional[str] = None
    ) -> Optional[str]:
        """
        Subscribe to events with a subject pattern using a durable consumer.

        Args:
            pattern: Subject pattern (e.g. "order.paid" or "delivery.*")
            handler: Async callback receiving an Event
            durable: Optional durable consumer name
        """
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return None

        async def _on_message(msg):
            try:
                event = Event.from_dict(json.loads(msg.data.decode()))
                await handler(event)
            except Exception as e:
                logger.error(f"Error processing message on {msg.subject}: {e}")
            finally:
                await msg.ack()

        try:
            await self._ensure_stream(pattern)
            consumer = durable or f"{self.service_name}-{pattern.replace('.', '-').replace('*', 'all')}"
            sub = await self._js.subscribe(pattern, durable=consumer, cb=_on_message, manual_ack=True)
            self._subscriptions[pattern] = sub
            logger.info(f"Subscribed to {pattern} (JetStream consumer {consumer})")
            return consumer
        except (NATSError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Error subscribing to {pattern}: {e}")
            return None

    async def unsubscribe(self, pattern: str) -> bool:
        sub = self._subscriptions.pop(pattern, None)
        if sub is None:
            return False
        await sub.unsubscribe()
        logger.info(f"Unsubscribed from {pattern}")
        return True

    async def close(self):
        """Drain subscriptions and close the connection"""
        for pattern in list(self._subscriptions.keys()):
            await self.unsubscribe(pattern)
        if self._nc:
            await self._nc.drain()
            self._nc = None
            self._js = None
        self._is_connected = False
        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        return self._is_connected


# Singleton instance
_event_bus: Optional[NATSEventBus] = None


async def get_event_bus(service_name: str, servers: Optional[str] = None) -> NATSEventBus:
    """
    Get or create event bus instance.

    Args:
        service_name: Name of the service using the event bus
        servers: Optional NATS server URL

    Returns:
        Connected NATSEventBus instance
    """
    global _event_bus

    if _event_bus is None:
        _event_bus = NATSEventBus(service_name=service_name, servers=servers)
        await _event_bus.connect()

    return _event_bus

