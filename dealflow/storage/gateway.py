"""
DealFlow — Storage Gateway

The persistence contract the sync orchestrator, job runner and scheduler
depend on. Backends:
  - InMemoryStorageGateway (tests, local dev)
  - SQLStorageGateway (storage/sql.py, SQLAlchemy async)

Transactions are keyed by external_transaction_id. save() never overwrites
and update() never creates; the orchestrator decides which one to call.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Protocol

import structlog

from dealflow.schemas import NormalizedTransaction, Tokens

logger = structlog.get_logger(__name__)


class StorageGateway(Protocol):
    """Async persistence contract for normalized transactions and sync state."""

    async def get_by_external_id(
        self, external_transaction_id: str
    ) -> NormalizedTransaction | None:
        ...

    async def save(self, transaction: NormalizedTransaction) -> NormalizedTransaction:
        ...

    async def update(self, transaction: NormalizedTransaction) -> NormalizedTransaction:
        ...

    async def update_last_sync_time(self, synced_at: datetime) -> None:
        ...

    async def get_last_sync_time(self) -> datetime | None:
        ...

    async def list_in_window(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[NormalizedTransaction]:
        ...

    async def get_tokens(self) -> Tokens | None:
        ...

    async def save_tokens(self, tokens: Tokens) -> None:
        ...


def in_window(sold_date: datetime, start: datetime | None, end: datetime | None) -> bool:
    """Half-open window check: start <= sold_date < end, either bound optional."""
    if start is not None and sold_date < start:
        return False
    if end is not None and sold_date >= end:
        return False
    return True


class InMemoryStorageGateway:
    """
    Dict-backed gateway.

    Stored and returned transactions are copies, so callers mutating a
    result never change what is stored.
    """

    def __init__(self) -> None:
        self._transactions: dict[str, NormalizedTransaction] = {}
        self._last_sync_time: datetime | None = None
        self._tokens: Tokens | None = None
        self._lock = asyncio.Lock()

    async def get_by_external_id(
        self, external_transaction_id: str
    ) -> NormalizedTransaction | None:
        tx = self._transactions.get(external_transaction_id)
        return tx.model_copy(deep=True) if tx else None

    async def save(self, transaction: NormalizedTransaction) -> NormalizedTransaction:
        async with self._lock:
            key = transaction.external_transaction_id
            if key in self._transactions:
                raise ValueError(f"Transaction {key} already exists")
            self._transactions[key] = transaction.model_copy(deep=True)
        logger.debug("storage_transaction_saved", external_transaction_id=key)
        return transaction

    async def update(self, transaction: NormalizedTransaction) -> NormalizedTransaction:
        async with self._lock:
            key = transaction.external_transaction_id
            if key not in self._transactions:
                raise KeyError(key)
            self._transactions[key] = transaction.model_copy(deep=True)
        logger.debug("storage_transaction_updated", external_transaction_id=key)
        return transaction

    async def update_last_sync_time(self, synced_at: datetime) -> None:
        self._last_sync_time = synced_at

    async def get_last_sync_time(self) -> datetime | None:
        return self._last_sync_time

    async def list_in_window(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[NormalizedTransaction]:
        matches = [
            tx.model_copy(deep=True)
            for tx in self._transactions.values()
            if in_window(tx.sold_date, start, end)
        ]
        matches.sort(key=lambda tx: tx.sold_date, reverse=True)
        return matches

    async def get_tokens(self) -> Tokens | None:
        return self._tokens

    async def save_tokens(self, tokens: Tokens) -> None:
        self._tokens = tokens

    def __len__(self) -> int:
        return len(self._transactions)
