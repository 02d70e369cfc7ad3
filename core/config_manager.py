#!/usr/bin/env python3
"""
Configuration Manager

Per-service configuration for the settlement microservices.

Priority for every value: environment variable → default.

Usage:
    from core.config_manager import ConfigManager

    config_manager = ConfigManager("settlement_service")
    config = config_manager.get_service_config()
    host, port = config_manager.discover_service(
        service_name="postgres",
        default_host="localhost",
        default_port=5432,
        env_host_key="POSTGRES_HOST",
        env_port_key="POSTGRES_PORT",
    )
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .config import InfraConfig, LoggingConfig, SettlementConfig

logger = logging.getLogger(__name__)


def _int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


class Environment(str, Enum):
    """Deployment environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def current(cls) -> "Environment":
        raw = (os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")).lower()
        aliases = {"dev": "development", "test": "testing", "prod": "production"}
        try:
            return cls(aliases.get(raw, raw))
        except ValueError:
            return cls.DEVELOPMENT


@dataclass
class ServiceConfig:
    """Resolved configuration for one service process"""
    service_name: str
    service_host: str = "0.0.0.0"
    service_port: int = 8250
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: str = "INFO"
    infra: InfraConfig = field(default_factory=InfraConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigManager:
    """Loads and caches configuration for a named service"""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self._config: Optional[ServiceConfig] = None

    def get_service_config(self) -> ServiceConfig:
        if self._config is None:
            environment = Environment.current()
            logging_config = LoggingConfig.from_env()
            prefix = self.service_name.upper()
            self._config = ServiceConfig(
                service_name=self.service_name,
                service_host=os.getenv(f"{prefix}_HOST") or os.getenv("SERVICE_HOST", "0.0.0.0"),
                service_port=_int(os.getenv(f"{prefix}_PORT") or os.getenv("SERVICE_PORT"), 8250),
                environment=environment,
                debug=environment == Environment.DEVELOPMENT,
                log_level=logging_config.log_level,
                infra=InfraConfig.from_env(),
                settlement=SettlementConfig.from_env(),
                logging=logging_config,
            )
            logger.debug(f"Loaded configuration for {self.service_name} ({environment.value})")
        return self._config

    def discover_service(
        self,
        service_name: str,
        default_host: str,
        default_port: int,
        env_host_key: Optional[str] = None,
        env_port_key: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Resolve host and port of a dependency.

        Args:
            service_name: Logical name of the dependency (for logging)
            default_host: Host used when no override is set
            default_port: Port used when no override is set
            env_host_key: Environment variable overriding the host
            env_port_key: Environment variable overriding the port

        Returns:
            (host, port) tuple
        """
        host = os.getenv(env_host_key) if env_host_key else None
        port = os.getenv(env_port_key) if env_port_key else None
        resolved = (host or default_host, _int(port, default_port))
        logger.debug(f"Resolved {service_name} at {resolved[0]}:{resolved[1]}")
        return resolved
