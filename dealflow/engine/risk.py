"""
DealFlow — Opportunity Risk Score

Heuristic point score over three independent factors:

    | Factor                  | HIGH (30)  | MEDIUM (15) | LOW (5) |
    |:------------------------|:-----------|:------------|:--------|
    | Recent sales count      | < 3        | < 10        | ≥ 10    |
    | Price range / mean (%)  | > 30       | > 15        | ≤ 15    |
    | Days since last sale    | > 30       | > 14        | ≤ 14    |

Score ≤ 30 → low, ≤ 60 → medium, else high. Confidence = 100 − score.
"""

from __future__ import annotations

from decimal import Decimal

import structlog

from dealflow.config import RiskLevel, settings
from dealflow.schemas import RiskAssessment

logger = structlog.get_logger(__name__)


def _sales_points(recent_sales_count: int) -> int:
    if recent_sales_count < settings.RISK_SALES_HIGH_BELOW:
        return settings.RISK_POINTS_HIGH
    if recent_sales_count < settings.RISK_SALES_MEDIUM_BELOW:
        return settings.RISK_POINTS_MEDIUM
    return settings.RISK_POINTS_LOW


def _volatility_points(price_volatility_percent: Decimal) -> int:
    if price_volatility_percent > settings.RISK_VOLATILITY_HIGH_ABOVE:
        return settings.RISK_POINTS_HIGH
    if price_volatility_percent > settings.RISK_VOLATILITY_MEDIUM_ABOVE:
        return settings.RISK_POINTS_MEDIUM
    return settings.RISK_POINTS_LOW


def _recency_points(days_since_last_sale: int) -> int:
    if days_since_last_sale > settings.RISK_STALE_HIGH_ABOVE_DAYS:
        return settings.RISK_POINTS_HIGH
    if days_since_last_sale > settings.RISK_STALE_MEDIUM_ABOVE_DAYS:
        return settings.RISK_POINTS_MEDIUM
    return settings.RISK_POINTS_LOW


def assess_risk(
    recent_sales_count: int,
    price_volatility_percent: Decimal,
    days_since_last_sale: int,
) -> RiskAssessment:
    """
    Score how risky it is to rely on recent sold data for a buy decision.

    Args:
        recent_sales_count: Number of recent sold listings observed.
        price_volatility_percent: (high − low) / mean × 100 of recent sales.
        days_since_last_sale: Age of the freshest sale in days.

    Returns:
        RiskAssessment(risk_level, confidence 0..100, raw score).
    """
    score = (
        _sales_points(recent_sales_count)
        + _volatility_points(Decimal(str(price_volatility_percent)))
        + _recency_points(days_since_last_sale)
    )

    if score <= settings.RISK_LEVEL_LOW_MAX:
        level = RiskLevel.LOW
    elif score <= settings.RISK_LEVEL_MEDIUM_MAX:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.HIGH

    confidence = max(0, min(100, 100 - score))

    logger.debug(
        "risk_assessed",
        recent_sales_count=recent_sales_count,
        price_volatility_percent=str(price_volatility_percent),
        days_since_last_sale=days_since_last_sale,
        score=score,
        risk_level=level.value,
    )
    return RiskAssessment(risk_level=level, confidence=confidence, score=score)
