"""Tests for the GetSellerTransactions XML codec."""

from __future__ import annotations

from datetime import datetime, timezone
from xml.etree import ElementTree as ET

import pytest

from conftest import seller_transactions_xml, transaction_xml
from dealflow.errors import RemoteApiError
from dealflow.pipeline.trading_xml import (
    NS,
    build_get_seller_transactions_xml,
    element_to_value,
    parse_get_seller_transactions_response,
)


def _error_block(code: str, message: str, severity: str = "Error") -> str:
    return (
        "<Errors>"
        f"<ShortMessage>{message}</ShortMessage>"
        f"<LongMessage>{message}</LongMessage>"
        f"<ErrorCode>{code}</ErrorCode>"
        f"<SeverityCode>{severity}</SeverityCode>"
        "</Errors>"
    )


class TestBuildRequest:
    def test_envelope_fields(self) -> None:
        body = build_get_seller_transactions_xml(
            mod_time_from=datetime(2024, 1, 1, tzinfo=timezone.utc),
            mod_time_to=datetime(2024, 1, 31, 6, 30, tzinfo=timezone.utc),
            page_number=3,
            entries_per_page=200,
        )
        root = ET.fromstring(body)

        assert root.tag == "{urn:ebay:apis:eBLBaseComponents}GetSellerTransactionsRequest"
        assert root.findtext("e:ModTimeFrom", namespaces=NS) == "2024-01-01T00:00:00.000Z"
        assert root.findtext("e:ModTimeTo", namespaces=NS) == "2024-01-31T06:30:00.000Z"
        assert root.findtext("e:Pagination/e:PageNumber", namespaces=NS) == "3"
        assert root.findtext("e:Pagination/e:EntriesPerPage", namespaces=NS) == "200"
        assert root.findtext("e:DetailLevel", namespaces=NS) == "ReturnAll"

    def test_naive_datetimes_treated_as_utc(self) -> None:
        body = build_get_seller_transactions_xml(
            datetime(2024, 1, 1), datetime(2024, 1, 2), 1, 10
        )
        assert "<ModTimeFrom>2024-01-01T00:00:00.000Z</ModTimeFrom>" in body


class TestElementToValue:
    def test_attributes_make_a_wrapper(self) -> None:
        elem = ET.fromstring('<Price currencyID="USD">9.99</Price>')
        assert element_to_value(elem) == {"value": "9.99", "currencyID": "USD"}

    def test_repeated_children_become_a_list(self) -> None:
        elem = ET.fromstring("<Item><Tag>a</Tag><Tag>b</Tag><Name>x</Name></Item>")
        assert element_to_value(elem) == {"Tag": ["a", "b"], "Name": "x"}


class TestParseResponse:
    def test_records_and_pagination(self) -> None:
        page = parse_get_seller_transactions_response(
            seller_transactions_xml(
                [transaction_xml("TX-1"), transaction_xml("TX-2", "10.00")],
                total_pages=4,
                total_entries=650,
            )
        )

        assert page.total_pages == 4
        assert page.total_entries == 650
        assert [r["TransactionID"] for r in page.records] == ["TX-1", "TX-2"]
        assert page.records[1]["TransactionPrice"] == {"value": "10.00", "currencyID": "USD"}
        assert page.records[0]["Item"]["PrimaryCategory"]["CategoryName"] == "Trading Cards"

    def test_empty_page(self) -> None:
        page = parse_get_seller_transactions_response(
            seller_transactions_xml([], total_pages=0, total_entries=0)
        )
        assert page.records == []
        assert page.total_pages == 1
        assert page.total_entries == 0

    def test_missing_pagination_uses_defaults(self) -> None:
        body = (
            '<GetSellerTransactionsResponse xmlns="urn:ebay:apis:eBLBaseComponents">'
            "<Ack>Success</Ack></GetSellerTransactionsResponse>"
        )
        page = parse_get_seller_transactions_response(body)
        assert (page.total_pages, page.total_entries) == (1, 0)

    def test_error_envelope_in_200_raises(self) -> None:
        body = seller_transactions_xml(
            [], ack="Failure", errors=_error_block("10007", "Internal error to the application.")
        )
        with pytest.raises(RemoteApiError) as exc_info:
            parse_get_seller_transactions_response(body)

        assert "Internal error to the application." in str(exc_info.value)
        assert exc_info.value.error_codes == ["10007"]
        assert exc_info.value.retryable is True

    def test_token_error_is_not_retryable(self) -> None:
        body = seller_transactions_xml(
            [], ack="Failure", errors=_error_block("932", "Auth token is hard expired.")
        )
        with pytest.raises(RemoteApiError) as exc_info:
            parse_get_seller_transactions_response(body)

        assert exc_info.value.status_code == 401
        assert exc_info.value.retryable is False

    def test_warnings_do_not_raise(self) -> None:
        body = seller_transactions_xml(
            [transaction_xml("TX-1")],
            ack="Warning",
            errors=_error_block("21917062", "Deprecated field.", severity="Warning"),
        )
        assert len(parse_get_seller_transactions_response(body).records) == 1

    def test_failure_ack_without_errors_raises(self) -> None:
        with pytest.raises(RemoteApiError, match="Unknown eBay API error"):
            parse_get_seller_transactions_response(seller_transactions_xml([], ack="Failure"))

    def test_malformed_xml_raises(self) -> None:
        with pytest.raises(RemoteApiError):
            parse_get_seller_transactions_response("<html>Service Unavailable")
