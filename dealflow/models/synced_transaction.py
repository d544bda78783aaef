"""
DealFlow — Synced Transaction Model

One row per marketplace sale, keyed by the marketplace transaction id.
Re-syncing the same sale updates this row in place; user-entered columns
(item_cost, notes, tags) are never overwritten by a sync.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, INTEGER, JSON, TIMESTAMP, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dealflow.models.base import Base


class SyncedTransaction(Base):
    """
    Normalized sale with its fee breakdown and profit figures.

    Fee columns are flattened from FeeBreakdown; the storage gateway maps
    rows to and from NormalizedTransaction.
    """

    __tablename__ = "synced_transactions"

    id: Mapped[str] = mapped_column(
        String(32), primary_key=True, comment="Internal id (uuid4 hex)"
    )
    external_transaction_id: Mapped[str] = mapped_column(
        String, unique=True, nullable=False, comment="eBay TransactionID (dedup key)"
    )
    external_item_id: Mapped[str] = mapped_column(
        String, nullable=False, default="", comment="eBay ItemID"
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    sold_price: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    sold_date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    listed_date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    item_cost: Mapped[Decimal | None] = mapped_column(
        DECIMAL(12, 2), nullable=True, comment="User-entered cost of goods"
    )
    shipping_cost: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    shipping_service: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    condition: Mapped[str] = mapped_column(String, nullable=False)

    # Fee breakdown
    final_value_fee: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    payment_processing_fee: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    insertion_fee: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    total_fees: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)

    net_profit: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    profit_margin: Mapped[Decimal] = mapped_column(
        DECIMAL(10, 2), nullable=False, comment="Percent of sold price"
    )
    days_listed: Mapped[int] = mapped_column(INTEGER, nullable=False, default=0)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    synced_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    sync_status: Mapped[str] = mapped_column(
        String, nullable=False, default="synced", comment="'synced', 'pending' or 'error'"
    )
    sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_synced_transactions_sold_date", "sold_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<SyncedTransaction external_transaction_id={self.external_transaction_id!r} "
            f"sold_price={self.sold_price!r} net_profit={self.net_profit!r}>"
        )
