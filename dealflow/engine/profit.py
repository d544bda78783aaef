"""
DealFlow - Net Profit Calculator

Net_Profit = Sold_Price - Item_Cost - Marketplace_Fees - Shipping
Margin     = Net_Profit / Sold_Price × 100   (0 when nothing was sold)
ROI        = Net_Profit / Total_Buy_Cost × 100 (0 when nothing was spent)
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

import structlog

from dealflow.engine.fees import compute_fees
from dealflow.schemas import FeeBreakdown, NormalizedTransaction, ProfitFigures

logger = structlog.get_logger(__name__)

_TWO_DP = Decimal("0.01")
_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(_TWO_DP, rounding=ROUND_HALF_UP)


def compute_profit(
    sold_price: Decimal,
    item_cost: Decimal | None,
    shipping_cost: Decimal,
    fees: FeeBreakdown,
) -> ProfitFigures:
    """Apply the net profit and margin formulas, rounded to 2dp."""
    net_profit = _quantize(
        sold_price - (item_cost or _ZERO) - fees.total - shipping_cost
    )

    margin = _ZERO
    if sold_price > _ZERO:
        margin = _quantize((net_profit / sold_price) * _HUNDRED)

    return ProfitFigures(net_profit=net_profit, profit_margin=margin)


def compute_roi(net_profit: Decimal, total_buy_cost: Decimal) -> Decimal:
    if total_buy_cost <= _ZERO:
        return _ZERO
    return _quantize((net_profit / total_buy_cost) * _HUNDRED)


def apply_financials(
    tx: NormalizedTransaction,
    item_cost: Decimal | None = None,
    insertion_fee: Decimal | None = None,
) -> NormalizedTransaction:
    """
    Fill fees, net profit and margin on a freshly normalized transaction.

    item_cost overrides whatever the transaction carries, which lets the
    orchestrator re-apply a cost the seller entered on an earlier sync.
    """
    cost = item_cost if item_cost is not None else tx.item_cost
    fees = compute_fees(tx.sold_price, tx.category, insertion_fee=insertion_fee)
    figures = compute_profit(tx.sold_price, cost, tx.shipping_cost, fees)

    logger.debug(
        "transaction_profit_calculated",
        external_transaction_id=tx.external_transaction_id,
        net_profit=str(figures.net_profit),
        profit_margin=str(figures.profit_margin),
    )
    return tx.model_copy(
        update={
            "item_cost": cost,
            "fees": fees,
            "net_profit": figures.net_profit,
            "profit_margin": figures.profit_margin,
        }
    )


def update_item_cost(
    tx: NormalizedTransaction,
    item_cost: Decimal | None,
) -> NormalizedTransaction:
    """Record a seller-entered item cost and recompute profit with the stored fees."""
    if item_cost is not None and item_cost < _ZERO:
        raise ValueError("item_cost must be non-negative")

    figures = compute_profit(tx.sold_price, item_cost, tx.shipping_cost, tx.fees)
    logger.info(
        "transaction_item_cost_updated",
        external_transaction_id=tx.external_transaction_id,
        item_cost=str(item_cost) if item_cost is not None else None,
        net_profit=str(figures.net_profit),
    )
    return tx.model_copy(
        update={
            "item_cost": item_cost,
            "net_profit": figures.net_profit,
            "profit_margin": figures.profit_margin,
        }
    )
