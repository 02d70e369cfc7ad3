"""
Delivery Service Clients
"""

from .storage_client import StorageClient

__all__ = ["StorageClient"]
