"""
Models package — export all SQLAlchemy models.
"""

from dealflow.models.base import Base
from dealflow.models.sync_state import SyncState
from dealflow.models.synced_transaction import SyncedTransaction

__all__ = ["Base", "SyncState", "SyncedTransaction"]
