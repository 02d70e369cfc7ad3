"""
Settlement Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that picks concrete adapters (PostgreSQL store,
courier gateway, object storage).

Usage:
    from .factory import create_settlement_services
    services = create_settlement_services(config, store, event_bus)
"""
import logging
from dataclasses import dataclass
from typing import Optional

from core.config import InfraConfig, SettlementConfig
from core.config_manager import ServiceConfig
from core.ledger_store import LedgerStoreProtocol

from microservices.delivery_service.clients.storage_client import StorageClient
from microservices.delivery_service.delivery_repository import DeliveryRepository
from microservices.delivery_service.delivery_service import DeliveryService
from microservices.delivery_service.providers import (
    CourierGateway,
    GIGLCourierGateway,
    MockCourierGateway,
)
from microservices.dispute_service.dispute_repository import DisputeRepository
from microservices.dispute_service.dispute_service import DisputeService
from microservices.escrow_service.escrow_repository import EscrowRepository
from microservices.escrow_service.escrow_service import EscrowService
from microservices.order_service.order_repository import OrderRepository
from microservices.order_service.order_service import OrderService
from microservices.payout_service.payout_repository import PayoutRepository
from microservices.payout_service.payout_service import PayoutService
from microservices.wallet_service.wallet_repository import WalletRepository
from microservices.wallet_service.wallet_service import WalletService

logger = logging.getLogger(__name__)


@dataclass
class SettlementServices:
    """The composed settlement services sharing one store"""
    store: LedgerStoreProtocol
    orders: OrderService
    wallets: WalletService
    escrow: EscrowService
    deliveries: DeliveryService
    payouts: PayoutService
    disputes: DisputeService
    courier: CourierGateway
    storage: Optional[StorageClient] = None

    async def close(self):
        await self.courier.close()
        if self.storage:
            await self.storage.close()


def create_courier_gateway(settlement: SettlementConfig) -> CourierGateway:
    """GIGL when COURIER_PROVIDER=gigl, otherwise the mock gateway"""
    if settlement.courier_provider == "gigl":
        return GIGLCourierGateway(
            base_url=settlement.gigl_api_url,
            api_key=settlement.gigl_api_key,
            timeout=settlement.courier_timeout_seconds,
        )
    if settlement.courier_provider != "mock":
        logger.warning(f"Unknown courier provider '{settlement.courier_provider}', using mock")
    return MockCourierGateway()


def create_storage_client(infra: InfraConfig) -> StorageClient:
    return StorageClient(base_url=infra.storage_url, api_key=infra.storage_key)


def create_settlement_services(
    config: ServiceConfig,
    store: LedgerStoreProtocol,
    event_bus=None,
    courier: Optional[CourierGateway] = None,
    storage=None,
) -> SettlementServices:
    """
    Wire every settlement service over `store`.

    Args:
        config: Resolved service configuration
        store: Ledger store (PostgresLedgerStore in production)
        event_bus: Event bus for publishing events (optional)
        courier: Courier gateway, built from config when omitted
        storage: Object storage client, built from config when omitted

    Returns:
        SettlementServices bundle
    """
    settlement = config.settlement
    courier = courier or create_courier_gateway(settlement)
    storage = storage or create_storage_client(config.infra)

    orders = OrderService(OrderRepository(store), event_bus=event_bus, config=settlement)
    wallets = WalletService(WalletRepository(store), event_bus=event_bus, config=settlement)
    dispute_repository = DisputeRepository(store)
    deliveries = DeliveryService(
        DeliveryRepository(store),
        order_service=orders,
        courier=courier,
        storage=storage,
        event_bus=event_bus,
        config=settlement,
    )
    escrow = EscrowService(
        EscrowRepository(store),
        order_service=orders,
        wallet_service=wallets,
        dispute_repository=dispute_repository,
        delivery_service=deliveries,
        event_bus=event_bus,
        config=settlement,
    )
    payouts = PayoutService(PayoutRepository(store), wallet_service=wallets, event_bus=event_bus, config=settlement)
    disputes = DisputeService(dispute_repository, escrow_service=escrow, order_service=orders, event_bus=event_bus)

    logger.info(f"Settlement services composed (courier: {courier.name})")
    return SettlementServices(
        store=store,
        orders=orders,
        wallets=wallets,
        escrow=escrow,
        deliveries=deliveries,
        payouts=payouts,
        disputes=disputes,
        courier=courier,
        storage=storage,
    )
