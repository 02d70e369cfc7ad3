#!/usr/bin/env python3
"""
Core Module for the Settlement Services

Shared infrastructure for the settlement microservices.

COMPONENTS:
    - config/: Dataclass-based configuration loaded from the environment
    - config_manager.py: Per-service configuration and endpoint discovery
    - logger.py: Service logger setup
    - errors.py: Error taxonomy shared by every service
    - ledger_store.py: Ledger store protocol and PostgreSQL adapter
    - nats_client.py: NATS event bus for event-driven side effects

USAGE:
    from core.config_manager import ConfigManager
    from core.errors import ConflictError

    config = ConfigManager("settlement_service")
"""

from .config_manager import ConfigManager, ServiceConfig
from .errors import (
    SettlementError,
    ValidationError,
    ConflictError,
    NotFoundError,
    DependencyError,
    InvariantViolation,
)

__all__ = [
    "ConfigManager",
    "ServiceConfig",
    "SettlementError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "DependencyError",
    "InvariantViolation",
]

__version__ = "1.0.0"
