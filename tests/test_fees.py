"""Tests for the marketplace fee calculator."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

import pytest

import dealflow.engine.fees as fees_module
from dealflow.config import settings
from dealflow.engine.fees import compute_fees, final_value_fee_rate


class TestFinalValueFeeRate:
    def test_exact_match_is_case_insensitive(self) -> None:
        assert final_value_fee_rate("BOOKS & MAGAZINES") == Decimal("0.1495")

    def test_category_path_uses_longest_contained_key(self) -> None:
        rate = final_value_fee_rate("Business & Industrial:Test Equipment")
        assert rate == Decimal("0.0300")

    def test_unknown_category_falls_back_to_default(self) -> None:
        assert final_value_fee_rate("Garden Gnomes") == settings.EBAY_FEE_RATE

    @pytest.mark.parametrize("category", [None, ""])
    def test_missing_category_falls_back_to_default(self, category) -> None:
        assert final_value_fee_rate(category) == settings.EBAY_FEE_RATE

    def test_rate_table_is_read_from_settings(self) -> None:
        with patch.object(fees_module.settings, "CATEGORY_FEE_RATES", {"widgets": Decimal("0.05")}):
            assert final_value_fee_rate("Widgets") == Decimal("0.05")


class TestComputeFees:
    def test_trading_card_sale(self) -> None:
        """45.99 × 13.25% = 6.093675 → 6.09, plus 0.30 processing."""
        fees = compute_fees(Decimal("45.99"), "Trading Cards")

        assert fees.final_value_fee == Decimal("6.09")
        assert fees.payment_processing_fee == Decimal("0.30")
        assert fees.insertion_fee is None
        assert fees.total == Decimal("6.39")

    def test_unknown_category_uses_trading_card_rate(self) -> None:
        assert compute_fees(Decimal("45.99"), "Mystery Boxes") == compute_fees(
            Decimal("45.99"), "Trading Cards"
        )

    def test_low_rate_category(self) -> None:
        fees = compute_fees(Decimal("100.00"), "Business & Industrial")
        assert fees.final_value_fee == Decimal("3.00")
        assert fees.total == Decimal("3.30")

    def test_insertion_fee_is_added_to_total(self) -> None:
        fees = compute_fees(Decimal("100.00"), "Trading Cards", insertion_fee=Decimal("0.35"))
        assert fees.final_value_fee == Decimal("13.25")
        assert fees.insertion_fee == Decimal("0.35")
        assert fees.total == Decimal("13.90")

    def test_rounds_half_up(self) -> None:
        """10.00 × 0.0635 = 0.635 → 0.64 under standard rounding."""
        fees = compute_fees(Decimal("10.00"), "Musical Instruments & Gear")
        assert fees.final_value_fee == Decimal("0.64")

    def test_zero_price_still_pays_processing_fee(self) -> None:
        fees = compute_fees(Decimal("0"), "Trading Cards")
        assert fees.final_value_fee == Decimal("0.00")
        assert fees.total == Decimal("0.30")

    def test_negative_price_rejected(self) -> None:
        with pytest.raises(ValueError):
            compute_fees(Decimal("-1.00"), "Trading Cards")

    def test_negative_insertion_fee_rejected(self) -> None:
        with pytest.raises(ValueError):
            compute_fees(Decimal("10.00"), "Trading Cards", insertion_fee=Decimal("-0.01"))
