"""
Component Test Layer Configuration

Wires the settlement services over the in-memory ledger store, the mock
event bus and the mock courier/storage.

Usage:
    pytest tests/component -v
    pytest tests/component/test_escrow_service.py -v
"""
import os
import sys

import pytest
import pytest_asyncio

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"
os.environ["NATS_ENABLED"] = "false"

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from microservices.delivery_service.delivery_repository import DeliveryRepository
from microservices.delivery_service.delivery_service import DeliveryService
from microservices.dispute_service.dispute_repository import DisputeRepository
from microservices.dispute_service.dispute_service import DisputeService
from microservices.escrow_service.escrow_repository import EscrowRepository
from microservices.escrow_service.escrow_service import EscrowService
from microservices.order_service.models import PaymentStatus
from microservices.order_service.order_repository import OrderRepository
from microservices.order_service.order_service import OrderService
from microservices.payout_service.payout_repository import PayoutRepository
from microservices.payout_service.payout_service import PayoutService
from microservices.wallet_service.wallet_repository import WalletRepository
from microservices.wallet_service.wallet_service import WalletService

from tests.component.mocks import InMemoryLedgerStore, MockCourier, MockEventBus, MockStorage
from tests.fixtures import make_bank_account, make_delivery_request, make_order_request, make_reference


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


# =============================================================================
# Infrastructure Mocks
# =============================================================================

@pytest.fixture
def store() -> InMemoryLedgerStore:
    """In-memory ledger store"""
    return InMemoryLedgerStore()


@pytest.fixture
def event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()


@pytest.fixture
def courier() -> MockCourier:
    return MockCourier()


@pytest.fixture
def storage() -> MockStorage:
    return MockStorage()


# =============================================================================
# Services
# =============================================================================

@pytest.fixture
def order_service(store, event_bus, settlement_config) -> OrderService:
    return OrderService(OrderRepository(store), event_bus=event_bus, config=settlement_config)


@pytest.fixture
def wallet_service(store, event_bus, settlement_config) -> WalletService:
    return WalletService(WalletRepository(store), event_bus=event_bus, config=settlement_config)


@pytest.fixture
def delivery_service(store, event_bus, settlement_config, order_service, courier, storage) -> DeliveryService:
    return DeliveryService(
        DeliveryRepository(store),
        order_service=order_service,
        courier=courier,
        storage=storage,
        event_bus=event_bus,
        config=settlement_config,
    )


@pytest.fixture
def dispute_repository(store) -> DisputeRepository:
    return DisputeRepository(store)


@pytest.fixture
def escrow_service(
    store, event_bus, settlement_config, order_service, wallet_service, dispute_repository, delivery_service
) -> EscrowService:
    return EscrowService(
        EscrowRepository(store),
        order_service=order_service,
        wallet_service=wallet_service,
        dispute_repository=dispute_repository,
        delivery_service=delivery_service,
        event_bus=event_bus,
        config=settlement_config,
    )


@pytest.fixture
def payout_service(store, event_bus, settlement_config, wallet_service) -> PayoutService:
    return PayoutService(PayoutRepository(store), wallet_service=wallet_service, event_bus=event_bus, config=settlement_config)


@pytest.fixture
def dispute_service(dispute_repository, escrow_service, order_service, event_bus) -> DisputeService:
    return DisputeService(dispute_repository, escrow_service=escrow_service, order_service=order_service, event_bus=event_bus)


# =============================================================================
# Scenario Builders
# =============================================================================

@pytest_asyncio.fixture
async def vendor_wallet(wallet_service):
    """A registered vendor wallet with a bank account and zero balance"""
    return await wallet_service.register_wallet("vendor_shop_001", "Obi Stores", make_bank_account())


@pytest_asyncio.fixture
async def pending_order(order_service, vendor_wallet):
    """Order of 6,500 (subtotal 5,000 + delivery 1,500) awaiting payment"""
    created = await order_service.create_order(make_order_request(vendor_id=vendor_wallet.id))
    return await order_service.get_order(created.order_id)


@pytest_asyncio.fixture
async def paid_order(order_service, pending_order):
    """Pending order with its payment captured (order confirmed)"""
    return await order_service.update_order_payment_status(
        pending_order.id, PaymentStatus.PAID, make_reference(), "card"
    )


@pytest_asyncio.fixture
async def held_escrow(escrow_service, paid_order):
    """Escrow held for the paid order"""
    return await escrow_service.hold_escrow(paid_order.id)


@pytest_asyncio.fixture
async def booked_delivery(delivery_service, held_escrow):
    """Delivery booked for the escrowed order (order processing)"""
    return await delivery_service.create_delivery(make_delivery_request(held_escrow.order_id))
