"""
Storage package — the gateway contract and its backends.
"""

from dealflow.storage.gateway import InMemoryStorageGateway, StorageGateway
from dealflow.storage.sql import SQLStorageGateway

__all__ = ["InMemoryStorageGateway", "SQLStorageGateway", "StorageGateway"]
