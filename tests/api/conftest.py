"""
API Test Layer Configuration

HTTP contract tests for the settlement FastAPI app. Requests go through
httpx's ASGI transport into the app, which is wired over the in-memory
ledger store and the mock courier, storage and event bus.

Usage:
    pytest tests/api -v
    pytest tests/api -v -k "escrow"
"""

import os
import sys
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

# Add project root
sys.path.insert(
    0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
)

from microservices.settlement_service import main
from microservices.settlement_service.factory import create_settlement_services

from tests.component.mocks import InMemoryLedgerStore, MockCourier, MockEventBus, MockStorage


# =============================================================================
# App wiring
# =============================================================================

@pytest.fixture
def settlement_services():
    """Compose the services over in-memory infrastructure and install them"""
    services = create_settlement_services(
        main.config,
        InMemoryLedgerStore(),
        event_bus=MockEventBus(),
        courier=MockCourier(),
        storage=MockStorage(),
    )
    main.settlement_microservice.services = services
    yield services
    main.settlement_microservice.services = None


@pytest_asyncio.fixture
async def http_client(settlement_services) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to the app (lifespan not run)"""
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://settlement.test", timeout=30.0) as client:
        yield client


@pytest_asyncio.fixture
async def bare_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client against an app with no services installed"""
    main.settlement_microservice.services = None
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://settlement.test") as client:
        yield client


# =============================================================================
# Helpers
# =============================================================================

class APIHelper:
    """Common API test helpers"""

    @staticmethod
    def assert_success(response: httpx.Response, expected_status: int = 200):
        assert response.status_code == expected_status, (
            f"Expected {expected_status}, got {response.status_code}: {response.text}"
        )

    @staticmethod
    def assert_error(response: httpx.Response, expected_status: int, detail: str = None):
        assert response.status_code == expected_status, (
            f"Expected {expected_status}, got {response.status_code}: {response.text}"
        )
        if detail is not None:
            assert response.json()["detail"] == detail


@pytest.fixture
def api_helper() -> APIHelper:
    return APIHelper()


def pytest_configure(config):
    config.addinivalue_line("markers", "api: API contract tests")
