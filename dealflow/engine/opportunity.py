"""
DealFlow — Arbitrage Opportunity Evaluation

Estimates what a card bought elsewhere would net if resold on eBay at its
average sold price. Independent of transaction sync.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

import structlog

from dealflow.config import settings
from dealflow.engine.fees import compute_fees
from dealflow.engine.profit import compute_profit, compute_roi
from dealflow.engine.risk import assess_risk
from dealflow.schemas import Opportunity

logger = structlog.get_logger(__name__)

_TWO_DP = Decimal("0.01")
_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(_TWO_DP, rounding=ROUND_HALF_UP)


def price_volatility(avg_sold: Decimal, low_sold: Decimal, high_sold: Decimal) -> Decimal:
    """Sold price range as a percentage of the mean."""
    if avg_sold <= _ZERO:
        return settings.OPPORTUNITY_UNKNOWN_VOLATILITY
    return _quantize((high_sold - low_sold) / avg_sold * _HUNDRED)


def evaluate_opportunity(
    card_name: str,
    buy_price: Decimal,
    buy_shipping: Decimal,
    avg_sold: Decimal,
    low_sold: Decimal,
    high_sold: Decimal,
    recent_sales_count: int,
    category: str | None = "Trading Cards",
    estimated_shipping: Decimal | None = None,
) -> Opportunity:
    """
    Build a full opportunity evaluation.

    The buy-side cost is treated as item cost; outbound shipping defaults to
    OPPORTUNITY_ESTIMATED_SHIPPING. Risk uses 0 days since last sale because
    the sold data is assumed freshly fetched.

    Raises:
        ValueError: If any price is negative.
    """
    for name, value in (
        ("buy_price", buy_price),
        ("buy_shipping", buy_shipping),
        ("avg_sold", avg_sold),
    ):
        if value < _ZERO:
            raise ValueError(f"{name} must be non-negative")

    shipping = (
        estimated_shipping
        if estimated_shipping is not None
        else settings.OPPORTUNITY_ESTIMATED_SHIPPING
    )
    total_buy_cost = _quantize(buy_price + buy_shipping)
    fees = compute_fees(avg_sold, category)
    figures = compute_profit(avg_sold, total_buy_cost, shipping, fees)
    roi = compute_roi(figures.net_profit, total_buy_cost)

    volatility = price_volatility(avg_sold, low_sold, high_sold)
    risk = assess_risk(recent_sales_count, volatility, 0)

    opportunity = Opportunity(
        card_name=card_name,
        buy_price=_quantize(buy_price),
        buy_shipping=_quantize(buy_shipping),
        total_buy_cost=total_buy_cost,
        estimated_sale_price=_quantize(avg_sold),
        low_sold=_quantize(low_sold),
        high_sold=_quantize(high_sold),
        recent_sales_count=recent_sales_count,
        fees=fees,
        estimated_shipping=_quantize(shipping),
        net_profit=figures.net_profit,
        roi=roi,
        profit_margin=figures.profit_margin,
        risk_level=risk.risk_level,
        confidence=risk.confidence,
    )

    logger.info(
        "opportunity_evaluated",
        card_name=card_name,
        net_profit=str(opportunity.net_profit),
        roi=str(opportunity.roi),
        risk_level=opportunity.risk_level.value,
    )
    return opportunity
