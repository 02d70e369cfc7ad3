"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (ledger store, NATS, courier, storage).
"""

from .ledger_store_mock import InMemoryLedgerStore
from .nats_mock import MockEvent, MockEventBus
from .courier_mock import MockCourier, MockStorage

__all__ = [
    'InMemoryLedgerStore',
    'MockEvent',
    'MockEventBus',
    'MockCourier',
    'MockStorage',
]
