"""
DealFlow — SQL Storage Gateway (SQLAlchemy 2.0 async)

PostgreSQL via asyncpg in production; tests run the same code against
aiosqlite. SQLite hands timestamps back naive, so every datetime read from
a row is re-tagged as UTC before it leaves this module.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dealflow.models.sync_state import SYNC_STATE_ID, SyncState
from dealflow.models.synced_transaction import SyncedTransaction
from dealflow.schemas import (
    FeeBreakdown,
    NormalizedTransaction,
    Tokens,
    TransactionSyncStatus,
)

logger = structlog.get_logger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _apply(row: SyncedTransaction, tx: NormalizedTransaction) -> None:
    """Copy every column except the primary key from tx onto row."""
    row.external_transaction_id = tx.external_transaction_id
    row.external_item_id = tx.external_item_id
    row.title = tx.title
    row.sold_price = tx.sold_price
    row.sold_date = tx.sold_date
    row.listed_date = tx.listed_date
    row.item_cost = tx.item_cost
    row.shipping_cost = tx.shipping_cost
    row.shipping_service = tx.shipping_service
    row.category = tx.category
    row.condition = tx.condition
    row.final_value_fee = tx.fees.final_value_fee
    row.payment_processing_fee = tx.fees.payment_processing_fee
    row.insertion_fee = tx.fees.insertion_fee
    row.total_fees = tx.fees.total
    row.net_profit = tx.net_profit
    row.profit_margin = tx.profit_margin
    row.days_listed = tx.days_listed
    row.notes = tx.notes
    row.tags = list(tx.tags)
    row.synced_at = tx.synced_at
    row.sync_status = tx.sync_status.value
    row.sync_error = tx.sync_error


def _to_transaction(row: SyncedTransaction) -> NormalizedTransaction:
    return NormalizedTransaction(
        id=row.id,
        external_transaction_id=row.external_transaction_id,
        external_item_id=row.external_item_id,
        title=row.title,
        sold_price=row.sold_price,
        sold_date=_as_utc(row.sold_date),
        listed_date=_as_utc(row.listed_date),
        item_cost=row.item_cost,
        shipping_cost=row.shipping_cost,
        shipping_service=row.shipping_service,
        category=row.category,
        condition=row.condition,
        fees=FeeBreakdown(
            final_value_fee=row.final_value_fee,
            payment_processing_fee=row.payment_processing_fee,
            insertion_fee=row.insertion_fee,
            total=row.total_fees,
        ),
        net_profit=row.net_profit,
        profit_margin=row.profit_margin,
        days_listed=row.days_listed,
        notes=row.notes,
        tags=list(row.tags or []),
        synced_at=_as_utc(row.synced_at),
        sync_status=TransactionSyncStatus(row.sync_status),
        sync_error=row.sync_error,
    )


class SQLStorageGateway:
    """
    StorageGateway backed by the synced_transactions and sync_state tables.

    Each call opens its own session from the injected factory and commits
    before returning.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    async def _find(session: AsyncSession, external_transaction_id: str) -> SyncedTransaction | None:
        stmt = select(SyncedTransaction).where(
            SyncedTransaction.external_transaction_id == external_transaction_id
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def _state(session: AsyncSession) -> SyncState:
        state = await session.get(SyncState, SYNC_STATE_ID)
        if state is None:
            state = SyncState(id=SYNC_STATE_ID)
            session.add(state)
        return state

    # -----------------------------------------------------------------------
    # Transactions
    # -----------------------------------------------------------------------

    async def get_by_external_id(
        self, external_transaction_id: str
    ) -> NormalizedTransaction | None:
        async with self._session_factory() as session:
            row = await self._find(session, external_transaction_id)
            return _to_transaction(row) if row else None

    async def save(self, transaction: NormalizedTransaction) -> NormalizedTransaction:
        async with self._session_factory() as session:
            row = SyncedTransaction(id=transaction.id)
            _apply(row, transaction)
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ValueError(
                    f"Transaction {transaction.external_transaction_id} already exists"
                ) from e

        logger.debug(
            "storage_transaction_saved",
            external_transaction_id=transaction.external_transaction_id,
        )
        return transaction

    async def update(self, transaction: NormalizedTransaction) -> NormalizedTransaction:
        async with self._session_factory() as session:
            row = await self._find(session, transaction.external_transaction_id)
            if row is None:
                raise KeyError(transaction.external_transaction_id)
            _apply(row, transaction)
            await session.commit()

        logger.debug(
            "storage_transaction_updated",
            external_transaction_id=transaction.external_transaction_id,
        )
        return transaction

    async def list_in_window(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[NormalizedTransaction]:
        stmt = select(SyncedTransaction)
        if start is not None:
            stmt = stmt.where(SyncedTransaction.sold_date >= start)
        if end is not None:
            stmt = stmt.where(SyncedTransaction.sold_date < end)
        stmt = stmt.order_by(SyncedTransaction.sold_date.desc())

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows: Sequence[SyncedTransaction] = result.scalars().all()

        logger.debug("storage_window_query", rows_found=len(rows))
        return [_to_transaction(row) for row in rows]

    # -----------------------------------------------------------------------
    # Sync state
    # -----------------------------------------------------------------------

    async def update_last_sync_time(self, synced_at: datetime) -> None:
        async with self._session_factory() as session:
            state = await self._state(session)
            state.last_sync_time = synced_at
            await session.commit()

    async def get_last_sync_time(self) -> datetime | None:
        async with self._session_factory() as session:
            state = await session.get(SyncState, SYNC_STATE_ID)
            return _as_utc(state.last_sync_time) if state else None

    async def get_tokens(self) -> Tokens | None:
        async with self._session_factory() as session:
            state = await session.get(SyncState, SYNC_STATE_ID)
            if state is None or not state.access_token or state.token_expires_at is None:
                return None
            return Tokens(
                access_token=state.access_token,
                refresh_token=state.refresh_token or "",
                expires_at=_as_utc(state.token_expires_at),
                token_type=state.token_type or "User Access Token",
            )

    async def save_tokens(self, tokens: Tokens) -> None:
        async with self._session_factory() as session:
            state = await self._state(session)
            state.access_token = tokens.access_token
            state.refresh_token = tokens.refresh_token
            state.token_expires_at = tokens.expires_at
            state.token_type = tokens.token_type
            await session.commit()
        logger.info("storage_tokens_saved", expires_at=tokens.expires_at.isoformat())
