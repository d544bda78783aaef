"""Tests for raw record normalization and wire value coercion."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conftest import make_raw_transaction
from dealflow.errors import TransformError
from dealflow.pipeline.transformer import (
    WireKind,
    WireValue,
    calculate_days_listed,
    normalize,
)

NOW = datetime(2024, 2, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# WireValue
# ---------------------------------------------------------------------------


class TestWireValue:
    @pytest.mark.parametrize(
        ("obj", "kind"),
        [
            (None, WireKind.MISSING),
            ("", WireKind.MISSING),
            ("   ", WireKind.MISSING),
            ({"currencyID": "USD"}, WireKind.MISSING),
            ([], WireKind.MISSING),
            (12.5, WireKind.NUMBER),
            (3, WireKind.NUMBER),
            ("12.50", WireKind.TEXT),
            ({"value": "12.50", "currencyID": "USD"}, WireKind.WRAPPED),
        ],
    )
    def test_kind(self, obj, kind: WireKind) -> None:
        assert WireValue.from_wire(obj).kind == kind

    @pytest.mark.parametrize(
        "obj",
        [12.5, "12.5", "12.50", {"value": "12.5"}, {"value": 12.5}, ["12.5", "99"]],
    )
    def test_every_shape_yields_same_amount(self, obj) -> None:
        assert WireValue.from_wire(obj).as_amount() == Decimal("12.50")

    def test_wrapper_keeps_attributes(self) -> None:
        value = WireValue.from_wire({"value": "4.50", "currencyID": "USD"})
        assert value.attributes == {"currencyID": "USD"}

    @pytest.mark.parametrize("obj", [None, "abc", "NaN", "Infinity", {"value": "n/a"}])
    def test_unparsable_amount_is_zero(self, obj) -> None:
        assert WireValue.from_wire(obj).as_amount() == Decimal("0")
        assert WireValue.from_wire(obj).as_decimal() is None

    def test_amount_beyond_decimal_precision_is_zero(self) -> None:
        assert WireValue.from_wire("1e50").as_amount() == Decimal("0")

    def test_currency_formatting_is_tolerated(self) -> None:
        assert WireValue.from_wire("$1,204.50").as_amount() == Decimal("1204.50")

    def test_text_default(self) -> None:
        assert WireValue.from_wire(None).as_text("Other") == "Other"
        assert WireValue.from_wire(" Books ").as_text("Other") == "Books"

    def test_datetime_parsing(self) -> None:
        parsed = WireValue.from_wire("2024-01-20T12:00:00.000Z").as_datetime()
        assert parsed == datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)

    def test_naive_datetime_is_utc(self) -> None:
        parsed = WireValue.from_wire("2024-01-20T12:00:00").as_datetime()
        assert parsed.tzinfo is not None
        assert parsed == datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)

    def test_bad_datetime_is_none(self) -> None:
        assert WireValue.from_wire("yesterday").as_datetime() is None


# ---------------------------------------------------------------------------
# Days listed
# ---------------------------------------------------------------------------


class TestDaysListed:
    def test_whole_days(self) -> None:
        assert calculate_days_listed(
            datetime(2024, 1, 15, tzinfo=timezone.utc),
            datetime(2024, 1, 20, tzinfo=timezone.utc),
        ) == 5

    def test_partial_day_rounds_up(self) -> None:
        assert calculate_days_listed(
            datetime(2024, 1, 15, 12, tzinfo=timezone.utc),
            datetime(2024, 1, 16, 13, tzinfo=timezone.utc),
        ) == 2

    def test_sold_before_listed_clamps_to_zero(self) -> None:
        assert calculate_days_listed(
            datetime(2024, 1, 20, tzinfo=timezone.utc),
            datetime(2024, 1, 15, tzinfo=timezone.utc),
        ) == 0


# ---------------------------------------------------------------------------
# normalize
# ---------------------------------------------------------------------------


class TestNormalize:
    def test_full_record(self, raw_transaction) -> None:
        tx = normalize(raw_transaction, now=NOW)

        assert tx.external_transaction_id == "TX-1001"
        assert tx.external_item_id == "110011001100"
        assert tx.title == "Charizard ex 199/165 NM"
        assert tx.sold_price == Decimal("45.99")
        assert tx.shipping_cost == Decimal("4.50")
        assert tx.shipping_service == "USPSFirstClass"
        assert tx.category == "Trading Cards"
        assert tx.condition == "Near Mint"
        assert tx.sold_date == datetime(2024, 1, 20, 12, tzinfo=timezone.utc)
        assert tx.listed_date == datetime(2024, 1, 15, 12, tzinfo=timezone.utc)
        assert tx.days_listed == 5
        assert tx.synced_at == NOW
        assert tx.item_cost is None
        assert tx.fees.total == Decimal("0")

    @pytest.mark.parametrize("price", [45.99, "45.99", {"value": "45.99"}, {"value": 45.99}])
    def test_price_shapes(self, price) -> None:
        assert normalize(make_raw_transaction(price=price), now=NOW).sold_price == Decimal("45.99")

    def test_missing_descriptive_fields_use_placeholders(self) -> None:
        raw = {"TransactionID": "TX-9", "TransactionPrice": "10.00"}
        tx = normalize(raw, now=NOW)

        assert tx.title == "Untitled Item"
        assert tx.category == "Other"
        assert tx.condition == "Used"
        assert tx.shipping_service == "Standard Shipping"
        assert tx.shipping_cost == Decimal("0")
        assert tx.sold_date == NOW
        assert tx.listed_date == NOW
        assert tx.days_listed == 0

    def test_unparsable_shipping_defaults_to_zero(self) -> None:
        tx = normalize(make_raw_transaction(shipping="free!"), now=NOW)
        assert tx.shipping_cost == Decimal("0")

    def test_oversized_shipping_defaults_to_zero(self) -> None:
        tx = normalize(make_raw_transaction(shipping="1e50"), now=NOW)
        assert tx.shipping_cost == Decimal("0")
        assert tx.sold_price == Decimal("45.99")

    def test_shipping_falls_back_to_selected_service_cost(self) -> None:
        raw = make_raw_transaction()
        del raw["ActualShippingCost"]
        raw["ShippingServiceSelected"]["ShippingServiceCost"] = {"value": "3.25", "currencyID": "USD"}
        assert normalize(raw, now=NOW).shipping_cost == Decimal("3.25")

    def test_sold_date_falls_back_to_paid_time(self) -> None:
        raw = make_raw_transaction()
        del raw["CreatedDate"]
        raw["PaidTime"] = "2024-01-22T08:00:00.000Z"
        assert normalize(raw, now=NOW).sold_date == datetime(2024, 1, 22, 8, tzinfo=timezone.utc)

    def test_missing_transaction_id_fails(self) -> None:
        raw = make_raw_transaction()
        del raw["TransactionID"]
        with pytest.raises(TransformError):
            normalize(raw, now=NOW)

    def test_missing_price_fails_with_external_id(self) -> None:
        raw = make_raw_transaction(transaction_id="TX-77")
        del raw["TransactionPrice"]
        with pytest.raises(TransformError) as exc_info:
            normalize(raw, now=NOW)
        assert exc_info.value.external_id == "TX-77"

    @pytest.mark.parametrize("price", ["abc", {"value": ""}, "-3.00", "1e50", {"value": "1E+40"}])
    def test_unusable_price_fails(self, price) -> None:
        with pytest.raises(TransformError) as exc_info:
            normalize(make_raw_transaction(transaction_id="TX-88", price=price), now=NOW)
        assert exc_info.value.external_id == "TX-88"

    def test_each_call_gets_a_fresh_internal_id(self, raw_transaction) -> None:
        assert normalize(raw_transaction).id != normalize(raw_transaction).id
