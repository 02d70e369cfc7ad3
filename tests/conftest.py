"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers:
    - api/        : HTTP contract tests (FastAPI app over the in-memory store)
    - component/  : Component tests (services over mocked store, bus, courier)
    - unit/       : Unit tests (pure functions, no I/O)
"""
import os
import sys

import pytest

# Set testing environment BEFORE any imports that read configuration
os.environ.setdefault("ENV", "testing")
os.environ["NATS_ENABLED"] = "false"

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from core.config import SettlementConfig


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def settlement_config() -> SettlementConfig:
    """Default settlement settings (5% fee, mock courier, auto release on)"""
    return SettlementConfig(wallet_max_retries=20)


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "api: API contract tests")
    config.addinivalue_line("markers", "component: Component tests")
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "requires_db: needs a reachable PostgreSQL")


def pytest_collection_modifyitems(config, items):
    """Skip infrastructure-bound tests when asked to"""
    skip_db = pytest.mark.skip(reason="PostgreSQL not available")
    for item in items:
        if "requires_db" in item.keywords and os.getenv("SKIP_DB_TESTS", "true").lower() == "true":
            item.add_marker(skip_db)
