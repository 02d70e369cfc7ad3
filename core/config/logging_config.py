#!/usr/bin/env python3
"""
Logging configuration

Besides the process-wide console/file output, settlement keeps a separate
ledger log: every record from the services that move money (wallet,
escrow, payout) is also written to LOG_LEDGER_FILE so credits, releases
and payouts can be reconciled without the request noise.
"""
import os
from dataclasses import dataclass, field
from typing import List

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Loggers whose records land in the ledger log
LEDGER_LOGGERS = [
    "microservices.wallet_service",
    "microservices.escrow_service",
    "microservices.payout_service",
]

# Client libraries logged at LOG_CLIENT_LEVEL
CLIENT_LOGGERS = ["httpx", "asyncpg", "nats"]


def _bool(val: str) -> bool:
    return val.lower() == "true"


def _list(val: str, default: List[str]) -> List[str]:
    items = [v.strip() for v in val.split(",") if v.strip()] if val else []
    return items or list(default)


@dataclass
class LoggingConfig:
    """Logging configuration"""
    log_level: str = "INFO"
    log_format: str = DEFAULT_FORMAT
    log_file: str = ""
    enable_console: bool = True

    # Money-movement audit log
    ledger_log_file: str = ""
    ledger_log_level: str = "INFO"
    ledger_loggers: List[str] = field(default_factory=lambda: list(LEDGER_LOGGERS))

    # Courier/database/bus clients
    client_log_level: str = "WARNING"
    client_loggers: List[str] = field(default_factory=lambda: list(CLIENT_LOGGERS))

    service_name: str = "settlement"
    environment: str = "development"

    @property
    def ledger_enabled(self) -> bool:
        return bool(self.ledger_log_file)

    @classmethod
    def from_env(cls) -> 'LoggingConfig':
        """Load logging config from LOG_* environment variables"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            log_level=os.getenv("LOG_LEVEL", "DEBUG" if env == "development" else "INFO"),
            log_format=os.getenv("LOG_FORMAT", DEFAULT_FORMAT),
            log_file=os.getenv("LOG_FILE", ""),
            enable_console=_bool(os.getenv("LOG_CONSOLE", "true")),
            ledger_log_file=os.getenv("LOG_LEDGER_FILE", ""),
            ledger_log_level=os.getenv("LOG_LEDGER_LEVEL", "INFO"),
            ledger_loggers=_list(os.getenv("LOG_LEDGER_LOGGERS", ""), LEDGER_LOGGERS),
            client_log_level=os.getenv("LOG_CLIENT_LEVEL", "WARNING"),
            client_loggers=_list(os.getenv("LOG_CLIENT_LOGGERS", ""), CLIENT_LOGGERS),
            service_name=os.getenv("SERVICE_NAME", "settlement"),
            environment=env,
        )
