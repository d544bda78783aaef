"""
DealFlow — Marketplace Fee Calculator

Category-keyed final value fee plus a flat payment processing fee.

Formulas:
- FVF: P × rate(category), rate from CATEGORY_FEE_RATES, default 0.1325
- Payment processing: flat $0.30 per transaction
- Total: FVF + processing + insertion fee (if any)
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

import structlog

from dealflow.config import settings
from dealflow.schemas import FeeBreakdown

logger = structlog.get_logger(__name__)

_TWO_DP = Decimal("0.01")
_ZERO = Decimal("0")


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(_TWO_DP, rounding=ROUND_HALF_UP)


def final_value_fee_rate(category: str | None) -> Decimal:
    """
    Resolve the FVF rate for a category name or colon-separated category path.

    Exact (case-insensitive) match wins; otherwise the longest table key that
    appears inside the category string; otherwise the trading-cards default.
    """
    if not category:
        return settings.EBAY_FEE_RATE

    normalized = category.strip().lower()
    table = {k.lower(): v for k, v in settings.CATEGORY_FEE_RATES.items()}
    if normalized in table:
        return table[normalized]

    matches = [key for key in table if key in normalized]
    if matches:
        return table[max(matches, key=len)]
    return settings.EBAY_FEE_RATE


def compute_fees(
    sold_price: Decimal,
    category: str | None,
    insertion_fee: Decimal | None = None,
) -> FeeBreakdown:
    """
    Calculate the marketplace fee breakdown for one sale.

    Args:
        sold_price: Final sale price.
        category: Marketplace category name (unknown → trading-cards rate).
        insertion_fee: Optional listing insertion fee to include in the total.

    Returns:
        FeeBreakdown with every component rounded to 2dp.

    Raises:
        ValueError: If sold_price or insertion_fee is negative.
    """
    if sold_price < _ZERO:
        raise ValueError("sold_price must be non-negative")
    if insertion_fee is not None and insertion_fee < _ZERO:
        raise ValueError("insertion_fee must be non-negative")

    rate = final_value_fee_rate(category)
    fvf = _quantize(sold_price * rate)
    processing = _quantize(settings.EBAY_PAYMENT_PROCESSING_FEE)
    insertion = _quantize(insertion_fee) if insertion_fee is not None else None
    total = _quantize(fvf + processing + (insertion or _ZERO))

    breakdown = FeeBreakdown(
        final_value_fee=fvf,
        payment_processing_fee=processing,
        insertion_fee=insertion,
        total=total,
    )

    logger.debug(
        "marketplace_fees_calculated",
        sold_price=str(sold_price),
        category=category,
        rate=str(rate),
        total=str(total),
        source="fees",
    )
    return breakdown
