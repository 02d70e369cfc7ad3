#!/usr/bin/env python3
"""
Service logger setup

Usage:
    from core.logger import setup_service_logger

    logger = setup_service_logger("settlement_service")
"""

import logging
import sys
from typing import Optional

from .config import LoggingConfig

_configured = False


def setup_service_logger(service_name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Configure root logging once per process and return the service logger.

    Args:
        service_name: Logger name, usually the service name
        level: Overrides LOG_LEVEL when given

    Returns:
        Logger for the service
    """
    global _configured

    config = LoggingConfig.from_env()
    log_level = (level or config.log_level).upper()

    if not _configured:
        handlers = []
        if config.enable_console:
            handlers.append(logging.StreamHandler(sys.stdout))
        if config.log_file:
            handlers.append(logging.FileHandler(config.log_file))
        logging.basicConfig(level=log_level, format=config.log_format, handlers=handlers or None)

        quiet_client_loggers(config)
        if config.ledger_enabled:
            attach_ledger_handler(config)
        _configured = True

    service_logger = logging.getLogger(service_name)
    service_logger.setLevel(log_level)
    return service_logger


def quiet_client_loggers(config: LoggingConfig):
    level = config.client_log_level.upper()
    for name in config.client_loggers:
        logging.getLogger(name).setLevel(level)


def attach_ledger_handler(config: LoggingConfig) -> logging.FileHandler:
    """
    Mirror the money-moving services' records into the ledger log file.

    The handler is attached to each of config.ledger_loggers, so records
    from their submodules (repositories, event handlers) are included.
    """
    handler = logging.FileHandler(config.ledger_log_file)
    handler.setLevel(config.ledger_log_level.upper())
    handler.setFormatter(logging.Formatter(config.log_format))
    for name in config.ledger_loggers:
        ledger_logger = logging.getLogger(name)
        ledger_logger.setLevel(config.ledger_log_level.upper())
        ledger_logger.addHandler(handler)
    logging.getLogger(__name__).info(f"Ledger log: {config.ledger_log_file}")
    return handler


def detach_ledger_handler(config: LoggingConfig, handler: logging.Handler):
    for name in config.ledger_loggers:
        logging.getLogger(name).removeHandler(handler)
    handler.close()
