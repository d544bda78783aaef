"""Tests for the opportunity risk score (bucket boundaries and point values)."""

from __future__ import annotations

from decimal import Decimal

import pytest

from dealflow.config import RiskLevel
from dealflow.engine.risk import (
    _recency_points,
    _sales_points,
    _volatility_points,
    assess_risk,
)


@pytest.mark.parametrize(
    ("sales", "points"),
    [(0, 30), (2, 30), (3, 15), (9, 15), (10, 5), (250, 5)],
)
def test_sales_points_boundaries(sales: int, points: int) -> None:
    assert _sales_points(sales) == points


@pytest.mark.parametrize(
    ("volatility", "points"),
    [
        (Decimal("0"), 5),
        (Decimal("15"), 5),
        (Decimal("15.01"), 15),
        (Decimal("30"), 15),
        (Decimal("30.01"), 30),
    ],
)
def test_volatility_points_boundaries(volatility: Decimal, points: int) -> None:
    assert _volatility_points(volatility) == points


@pytest.mark.parametrize(
    ("days", "points"),
    [(0, 5), (14, 5), (15, 15), (30, 15), (31, 30)],
)
def test_recency_points_boundaries(days: int, points: int) -> None:
    assert _recency_points(days) == points


class TestAssessRisk:
    def test_all_low_factors(self) -> None:
        result = assess_risk(25, Decimal("5"), 1)
        assert result.score == 15
        assert result.risk_level == RiskLevel.LOW
        assert result.confidence == 85

    def test_low_to_medium_boundary(self) -> None:
        # 15 + 5 + 5 = 25, 15 + 15 + 5 = 35
        assert assess_risk(5, Decimal("5"), 1).risk_level == RiskLevel.LOW
        assert assess_risk(5, Decimal("20"), 1).risk_level == RiskLevel.MEDIUM

    def test_score_sixty_is_medium(self) -> None:
        result = assess_risk(1, Decimal("20"), 20)
        assert result.score == 60
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.confidence == 40

    def test_above_sixty_is_high(self) -> None:
        result = assess_risk(1, Decimal("40"), 1)
        assert result.score == 65
        assert result.risk_level == RiskLevel.HIGH

    def test_all_high_factors(self) -> None:
        result = assess_risk(0, Decimal("80"), 90)
        assert result.score == 90
        assert result.risk_level == RiskLevel.HIGH
        assert result.confidence == 10

    def test_accepts_float_volatility(self) -> None:
        assert assess_risk(12, 16.5, 0).score == 25
