"""
DealFlow — Domain models shared by the pipeline, engine and storage layers.

All money is Decimal (2dp). Timestamps are timezone-aware UTC.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dealflow.config import RiskLevel, SyncStatusCode

_ZERO = Decimal("0")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class Tokens(BaseModel):
    """OAuth token pair issued by the marketplace."""

    access_token: str
    refresh_token: str = ""
    expires_at: datetime
    token_type: str = "User Access Token"

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at


# ---------------------------------------------------------------------------
# Wire / transactions
# ---------------------------------------------------------------------------


class TransactionsPage(BaseModel):
    """One parsed GetSellerTransactions page."""

    records: list[dict[str, Any]] = Field(default_factory=list)
    total_pages: int = 1
    total_entries: int = 0


class FeeBreakdown(BaseModel):
    final_value_fee: Decimal = _ZERO
    payment_processing_fee: Decimal = _ZERO
    insertion_fee: Decimal | None = None
    total: Decimal = _ZERO


class TransactionSyncStatus(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"


class NormalizedTransaction(BaseModel):
    """A sale normalized from the marketplace, keyed by external_transaction_id."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    external_transaction_id: str
    external_item_id: str = ""
    title: str = "Untitled Item"
    sold_price: Decimal
    sold_date: datetime
    listed_date: datetime
    item_cost: Decimal | None = None
    shipping_cost: Decimal = _ZERO
    shipping_service: str = "Standard Shipping"
    category: str = "Other"
    condition: str = "Used"
    fees: FeeBreakdown = Field(default_factory=FeeBreakdown)
    net_profit: Decimal = _ZERO
    profit_margin: Decimal = _ZERO
    days_listed: int = 0
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)
    synced_at: datetime = Field(default_factory=utcnow)
    sync_status: TransactionSyncStatus = TransactionSyncStatus.SYNCED
    sync_error: str | None = None


# ---------------------------------------------------------------------------
# Sync run state
# ---------------------------------------------------------------------------


class SyncProgress(BaseModel):
    """Live progress of the current run, mutated in place by the orchestrator."""

    status: SyncStatusCode = SyncStatusCode.STARTING
    total: int = 0
    processed: int = 0
    errors: int = 0
    current_page: int = 1
    total_pages: int = 1
    started_at: datetime = Field(default_factory=utcnow)


class SyncResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    new_count: int = 0
    updated_count: int = 0
    errors: tuple[str, ...] = ()
    synced_at: datetime = Field(default_factory=utcnow)


class SyncProgressSummary(BaseModel):
    current: int = 0
    total: int = 0
    percentage: int = 0
    errors: int = 0


class SyncPagination(BaseModel):
    current_page: int = 1
    total_pages: int = 1


class SyncStatus(BaseModel):
    """Read-only status surface polled by the UI."""

    is_active: bool
    progress: SyncProgressSummary
    current_step: str
    status: str
    pagination: SyncPagination | None = None
    last_sync_time: datetime | None = None
    estimated_completion: datetime | None = None


class SyncJobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncJob(BaseModel):
    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    status: SyncJobStatus = SyncJobStatus.PENDING
    days_back: int
    force: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None
    result: SyncResult | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Calculator outputs
# ---------------------------------------------------------------------------


class ProfitFigures(BaseModel):
    net_profit: Decimal
    profit_margin: Decimal


class RiskAssessment(BaseModel):
    risk_level: RiskLevel
    confidence: int
    score: int


class Opportunity(BaseModel):
    """Buy-side arbitrage evaluation for a card."""

    card_name: str
    buy_price: Decimal
    buy_shipping: Decimal
    total_buy_cost: Decimal
    estimated_sale_price: Decimal
    low_sold: Decimal
    high_sold: Decimal
    recent_sales_count: int
    fees: FeeBreakdown
    estimated_shipping: Decimal
    net_profit: Decimal
    roi: Decimal
    profit_margin: Decimal
    risk_level: RiskLevel
    confidence: int
    created_at: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class TrendAnalysis(BaseModel):
    profit_change: Decimal = _ZERO
    volume_change: Decimal = _ZERO
    margin_change: Decimal = _ZERO
    revenue_change: Decimal = _ZERO


class DashboardTrends(BaseModel):
    profit: Decimal = _ZERO
    transactions: Decimal = _ZERO
    margin: Decimal = _ZERO


class DashboardMetrics(BaseModel):
    total_profit: Decimal = _ZERO
    monthly_profit: Decimal = _ZERO
    total_transactions: int = 0
    average_profit: Decimal = _ZERO
    profit_margin: Decimal = _ZERO
    top_category: str = "No data"
    trends: DashboardTrends = Field(default_factory=DashboardTrends)


class MonthlyAnalytics(BaseModel):
    total_profit: Decimal = _ZERO
    average_profit: Decimal = _ZERO
    total_items: int = 0
    average_days_listed: Decimal = _ZERO
    profit_margin: Decimal = _ZERO
    total_revenue: Decimal = _ZERO
    total_costs: Decimal = _ZERO


class CategoryAnalysis(BaseModel):
    category: str
    total_profit: Decimal
    item_count: int
    average_profit: Decimal
    average_margin: Decimal


class MonthlyProfitPoint(BaseModel):
    month: str          # YYYY-MM
    label: str          # "Jan 2024"
    profit: Decimal = _ZERO
    transactions: int = 0
    margin: Decimal = _ZERO


class RecentActivity(BaseModel):
    recent_sales: int = 0
    recent_profit: Decimal = _ZERO
    avg_days_to_sell: Decimal = _ZERO
    best_sale: NormalizedTransaction | None = None
