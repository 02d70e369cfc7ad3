#!/usr/bin/env python3
"""Modular configuration system for the settlement services

Configuration hierarchy:
- infra_config: Infrastructure endpoints (PostgreSQL, NATS, object storage)
- settlement_config: Business settings (fees, courier, wallet retries)
- logging_config: Logging configuration
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .settlement_config import SettlementConfig

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)

# Create global settings instance
settings = SettlementConfig.from_env()

def get_settings() -> SettlementConfig:
    """Get global settings instance"""
    return settings

def reload_settings() -> SettlementConfig:
    """Reload settings from environment"""
    global settings
    settings = SettlementConfig.from_env()
    return settings

__all__ = [
    'SettlementConfig',
    'get_settings',
    'reload_settings',
    'settings',
    'LoggingConfig',
    'InfraConfig',
]
