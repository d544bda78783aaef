"""
DealFlow — Sales Analytics

Pure aggregations over normalized transactions. Nothing here is persisted:
every figure is recomputed on demand from the transactions passed in.

Month windows are half-open UTC intervals [first day 00:00, next month 00:00).
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence

import structlog

from dealflow.config import settings
from dealflow.schemas import (
    CategoryAnalysis,
    DashboardMetrics,
    DashboardTrends,
    MonthlyAnalytics,
    MonthlyProfitPoint,
    NormalizedTransaction,
    RecentActivity,
    TrendAnalysis,
    utcnow,
)

logger = structlog.get_logger(__name__)

_ONE_DP = Decimal("0.1")
_TWO_DP = Decimal("0.01")
_HUNDRED = Decimal("100")
_ZERO = Decimal("0")

_MONTH_LABELS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def _q2(value: Decimal) -> Decimal:
    return value.quantize(_TWO_DP, rounding=ROUND_HALF_UP)


def _q1(value: Decimal) -> Decimal:
    return value.quantize(_ONE_DP, rounding=ROUND_HALF_UP)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _total(values: Iterable[Decimal]) -> Decimal:
    return sum(values, _ZERO)


def _margin(profit: Decimal, revenue: Decimal) -> Decimal:
    if revenue <= _ZERO:
        return _ZERO
    return profit / revenue * _HUNDRED


def _transaction_costs(tx: NormalizedTransaction) -> Decimal:
    return (tx.item_cost or _ZERO) + tx.fees.total + tx.shipping_cost


# ---------------------------------------------------------------------------
# Monthly metrics & trends
# ---------------------------------------------------------------------------


def monthly_metrics(
    transactions: Sequence[NormalizedTransaction],
    year: int,
    month: int,
) -> MonthlyAnalytics:
    """Aggregate one calendar month (1-12). Empty months return all zeros."""
    start, end = _month_bounds(year, month)
    in_month = [tx for tx in transactions if start <= _as_utc(tx.sold_date) < end]

    if not in_month:
        return MonthlyAnalytics()

    count = len(in_month)
    total_profit = _total(tx.net_profit for tx in in_month)
    total_revenue = _total(tx.sold_price for tx in in_month)
    total_costs = _total(_transaction_costs(tx) for tx in in_month)
    days_listed = Decimal(sum(tx.days_listed for tx in in_month))

    return MonthlyAnalytics(
        total_profit=_q2(total_profit),
        average_profit=_q2(total_profit / count),
        total_items=count,
        average_days_listed=_q1(days_listed / count),
        profit_margin=_q2(_margin(total_profit, total_revenue)),
        total_revenue=_q2(total_revenue),
        total_costs=_q2(total_costs),
    )


def percentage_change(current: Decimal, previous: Decimal) -> Decimal:
    """
    Percent change from previous to current, 1dp.

    A zero baseline yields +100 when current is positive and 0 otherwise.
    The change is relative to the signed baseline, so moving away from a
    negative baseline flips the sign.
    """
    current = Decimal(current)
    previous = Decimal(previous)
    if previous == _ZERO:
        return Decimal("100.0") if current > _ZERO else Decimal("0.0")
    return _q1((current - previous) / previous * _HUNDRED)


def trend(current: MonthlyAnalytics, previous: MonthlyAnalytics) -> TrendAnalysis:
    return TrendAnalysis(
        profit_change=percentage_change(current.total_profit, previous.total_profit),
        volume_change=percentage_change(
            Decimal(current.total_items), Decimal(previous.total_items)
        ),
        margin_change=percentage_change(current.profit_margin, previous.profit_margin),
        revenue_change=percentage_change(current.total_revenue, previous.total_revenue),
    )


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def category_analysis(
    transactions: Sequence[NormalizedTransaction],
) -> list[CategoryAnalysis]:
    """Per-category totals, sorted by total profit (highest first)."""
    groups: dict[str, list[NormalizedTransaction]] = defaultdict(list)
    for tx in transactions:
        category = (tx.category or "").strip() or "Other"
        groups[category].append(tx)

    results: list[CategoryAnalysis] = []
    for category, group in groups.items():
        total_profit = _total(tx.net_profit for tx in group)
        total_revenue = _total(tx.sold_price for tx in group)
        results.append(
            CategoryAnalysis(
                category=category,
                total_profit=_q2(total_profit),
                item_count=len(group),
                average_profit=_q2(total_profit / len(group)),
                average_margin=_q2(_margin(total_profit, total_revenue)),
            )
        )

    results.sort(key=lambda c: c.total_profit, reverse=True)
    return results


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


def dashboard_metrics(
    transactions: Sequence[NormalizedTransaction],
    now: datetime | None = None,
) -> DashboardMetrics:
    """Headline numbers plus month-over-month trends for the dashboard."""
    if not transactions:
        return DashboardMetrics()

    now = _as_utc(now or utcnow())
    count = len(transactions)
    total_profit = _total(tx.net_profit for tx in transactions)
    total_revenue = _total(tx.sold_price for tx in transactions)

    current = monthly_metrics(transactions, now.year, now.month)
    prev_year, prev_month = _shift_month(now.year, now.month, -1)
    previous = monthly_metrics(transactions, prev_year, prev_month)
    month_trend = trend(current, previous)

    categories = category_analysis(transactions)

    metrics = DashboardMetrics(
        total_profit=_q2(total_profit),
        monthly_profit=current.total_profit,
        total_transactions=count,
        average_profit=_q2(total_profit / count),
        profit_margin=_q1(_margin(total_profit, total_revenue)),
        top_category=categories[0].category if categories else "No data",
        trends=DashboardTrends(
            profit=month_trend.profit_change,
            transactions=month_trend.volume_change,
            margin=month_trend.margin_change,
        ),
    )

    logger.debug(
        "dashboard_metrics_calculated",
        total_transactions=count,
        total_profit=str(metrics.total_profit),
        top_category=metrics.top_category,
    )
    return metrics


def monthly_profit_trend(
    transactions: Sequence[NormalizedTransaction],
    months_back: int | None = None,
    now: datetime | None = None,
) -> list[MonthlyProfitPoint]:
    """
    Fixed-length series of trailing months, oldest first.

    Months without sales are present with zero values so charts keep a
    continuous x-axis.
    """
    months = months_back if months_back is not None else settings.ANALYTICS_TREND_MONTHS
    if months < 1:
        raise ValueError("months_back must be at least 1")

    now = _as_utc(now or utcnow())
    series: list[MonthlyProfitPoint] = []
    for offset in range(months - 1, -1, -1):
        year, month = _shift_month(now.year, now.month, -offset)
        metrics = monthly_metrics(transactions, year, month)
        series.append(
            MonthlyProfitPoint(
                month=f"{year:04d}-{month:02d}",
                label=f"{_MONTH_LABELS[month - 1]} {year}",
                profit=metrics.total_profit,
                transactions=metrics.total_items,
                margin=metrics.profit_margin,
            )
        )
    return series


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------


def top_performing_items(
    transactions: Sequence[NormalizedTransaction],
    limit: int | None = None,
) -> list[NormalizedTransaction]:
    limit = limit if limit is not None else settings.ANALYTICS_TOP_ITEMS
    return sorted(transactions, key=lambda tx: tx.net_profit, reverse=True)[:limit]


def recent_activity(
    transactions: Sequence[NormalizedTransaction],
    days: int | None = None,
    now: datetime | None = None,
) -> RecentActivity:
    """Sales summary for the trailing window of `days` days."""
    days = days if days is not None else settings.ANALYTICS_RECENT_DAYS
    cutoff = _as_utc(now or utcnow()) - timedelta(days=days)
    recent = [tx for tx in transactions if _as_utc(tx.sold_date) >= cutoff]

    if not recent:
        return RecentActivity()

    profit = _total(tx.net_profit for tx in recent)
    avg_days = Decimal(sum(tx.days_listed for tx in recent)) / len(recent)
    return RecentActivity(
        recent_sales=len(recent),
        recent_profit=_q2(profit),
        avg_days_to_sell=_q1(avg_days),
        best_sale=max(recent, key=lambda tx: tx.net_profit),
    )
