"""
DealFlow — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- Raw GetSellerTransactions records and XML response bodies
- Normalized transaction factory
- Scripted marketplace client double and a no-op sleep
- In-memory and aiosqlite-backed storage gateways
- Async test support via pytest-asyncio
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dealflow.models.base import Base
from dealflow.schemas import FeeBreakdown, NormalizedTransaction, Tokens, TransactionsPage
from dealflow.storage.gateway import InMemoryStorageGateway
from dealflow.storage.sql import SQLStorageGateway


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


# ---------------------------------------------------------------------------
# Raw wire data
# ---------------------------------------------------------------------------


def make_raw_transaction(
    transaction_id: str = "TX-1001",
    price: Any = None,
    created: str = "2024-01-20T12:00:00.000Z",
    start_time: str = "2024-01-15T12:00:00.000Z",
    shipping: Any = None,
    category: str = "Trading Cards",
    title: str = "Charizard ex 199/165 NM",
) -> dict[str, Any]:
    """Record shaped like trading_xml.element_to_value output for one <Transaction>."""
    if price is None:
        price = {"value": "45.99", "currencyID": "USD"}
    if shipping is None:
        shipping = {"value": "4.50", "currencyID": "USD"}
    return {
        "TransactionID": transaction_id,
        "TransactionPrice": price,
        "CreatedDate": created,
        "ActualShippingCost": shipping,
        "ShippingServiceSelected": {"ShippingService": "USPSFirstClass"},
        "Item": {
            "ItemID": "110011001100",
            "Title": title,
            "ConditionDisplayName": "Near Mint",
            "ListingDetails": {"StartTime": start_time},
            "PrimaryCategory": {"CategoryID": "183454", "CategoryName": category},
        },
    }


def transaction_xml(transaction_id: str, price: str = "45.99") -> str:
    return (
        "<Transaction>"
        f"<TransactionID>{transaction_id}</TransactionID>"
        f'<TransactionPrice currencyID="USD">{price}</TransactionPrice>'
        "<CreatedDate>2024-01-20T12:00:00.000Z</CreatedDate>"
        '<ActualShippingCost currencyID="USD">4.50</ActualShippingCost>'
        "<Item>"
        "<ItemID>110011001100</ItemID>"
        "<Title>Charizard ex 199/165 NM</Title>"
        "<ListingDetails><StartTime>2024-01-15T12:00:00.000Z</StartTime></ListingDetails>"
        "<PrimaryCategory><CategoryName>Trading Cards</CategoryName></PrimaryCategory>"
        "</Item>"
        "</Transaction>"
    )


def seller_transactions_xml(
    transactions: list[str],
    total_pages: int = 1,
    total_entries: int | None = None,
    ack: str = "Success",
    errors: str = "",
) -> str:
    entries = len(transactions) if total_entries is None else total_entries
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<GetSellerTransactionsResponse xmlns="urn:ebay:apis:eBLBaseComponents">'
        "<Timestamp>2024-01-21T00:00:00.000Z</Timestamp>"
        f"<Ack>{ack}</Ack>"
        f"{errors}"
        "<PaginationResult>"
        f"<TotalNumberOfPages>{total_pages}</TotalNumberOfPages>"
        f"<TotalNumberOfEntries>{entries}</TotalNumberOfEntries>"
        "</PaginationResult>"
        f"<TransactionArray>{''.join(transactions)}</TransactionArray>"
        "</GetSellerTransactionsResponse>"
    )


@pytest.fixture
def raw_transaction() -> dict[str, Any]:
    return make_raw_transaction()


# ---------------------------------------------------------------------------
# Normalized transactions
# ---------------------------------------------------------------------------


def make_transaction(
    external_id: str = "TX-1",
    sold_price: str = "100.00",
    net_profit: str = "20.00",
    sold_date: datetime | None = None,
    category: str = "Trading Cards",
    days_listed: int = 5,
    item_cost: str | None = None,
    fees_total: str = "13.55",
    shipping_cost: str = "4.00",
) -> NormalizedTransaction:
    sold = sold_date or datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
    price = Decimal(sold_price)
    profit = Decimal(net_profit)
    return NormalizedTransaction(
        external_transaction_id=external_id,
        external_item_id=f"item-{external_id}",
        title=f"Item {external_id}",
        sold_price=price,
        sold_date=sold,
        listed_date=sold,
        item_cost=Decimal(item_cost) if item_cost is not None else None,
        shipping_cost=Decimal(shipping_cost),
        category=category,
        fees=FeeBreakdown(
            final_value_fee=Decimal(fees_total) - Decimal("0.30"),
            payment_processing_fee=Decimal("0.30"),
            total=Decimal(fees_total),
        ),
        net_profit=profit,
        profit_margin=(profit / price * 100).quantize(Decimal("0.01")) if price else Decimal("0"),
        days_listed=days_listed,
    )


# ---------------------------------------------------------------------------
# Marketplace client double
# ---------------------------------------------------------------------------


class FakeEbayClient:
    """
    Scripted stand-in for EbayAPIClient.

    Each fetch pops the next scripted item: a TransactionsPage is returned,
    an exception is raised. An exhausted script returns an empty page.
    Setting `gate` parks the next fetch until the event is set.
    """

    def __init__(self, responses: list[Any] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []
        self.refresh_calls: list[str] = []
        self.refreshed_tokens: Tokens | None = None
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()

    async def fetch_transactions_page(
        self,
        access_token: str,
        from_date: datetime,
        to_date: datetime,
        page_number: int = 1,
        page_size: int | None = None,
    ) -> TransactionsPage:
        self.calls.append(
            {
                "access_token": access_token,
                "from_date": from_date,
                "to_date": to_date,
                "page_number": page_number,
                "page_size": page_size,
            }
        )
        self.entered.set()
        if self.gate is not None:
            gate, self.gate = self.gate, None
            await gate.wait()

        if not self.responses:
            return TransactionsPage()
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def refresh_access_token(self, refresh_token: str) -> Tokens:
        self.refresh_calls.append(refresh_token)
        if self.refreshed_tokens is None:
            raise AssertionError("refresh_access_token called without scripted tokens")
        return self.refreshed_tokens


def page_of(*transaction_ids: str, total_pages: int = 1, total_entries: int | None = None) -> TransactionsPage:
    records = [make_raw_transaction(transaction_id=tid) for tid in transaction_ids]
    return TransactionsPage(
        records=records,
        total_pages=total_pages,
        total_entries=len(records) if total_entries is None else total_entries,
    )


@pytest.fixture
def no_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_storage() -> InMemoryStorageGateway:
    return InMemoryStorageGateway()


@pytest.fixture
async def sql_session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory on a fresh aiosqlite in-memory database.

    StaticPool keeps a single connection so every session sees the same tables.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def sql_storage(sql_session_factory) -> SQLStorageGateway:
    return SQLStorageGateway(sql_session_factory)
