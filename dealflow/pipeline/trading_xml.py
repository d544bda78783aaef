"""
DealFlow — eBay Trading API XML codec (GetSellerTransactions)

Builds the request envelope and turns the response into plain dicts.

Leaf elements become strings. Leaf elements that carry attributes (amounts
with currencyID) become {"value": text, <attr>: ...} wrappers, so the same
logical field can show up as a scalar or as a wrapper depending on the
payload. Repeated child tags become lists.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from xml.etree import ElementTree as ET
from xml.sax.saxutils import escape

import structlog

from dealflow.errors import RemoteApiError
from dealflow.schemas import TransactionsPage

logger = structlog.get_logger(__name__)

NS = {"e": "urn:ebay:apis:eBLBaseComponents"}

# Token problems reported inside an HTTP 200 are treated as 401s so the
# retry policy does not hammer eBay with a dead token.
_AUTH_ERROR_CODES = frozenset({"931", "932", "16110", "21917053"})


def _xml_text(val: Any) -> str:
    return escape("" if val is None else str(val))


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + (
        f"{value.microsecond // 1000:03d}Z"
    )


def build_get_seller_transactions_xml(
    mod_time_from: datetime,
    mod_time_to: datetime,
    page_number: int,
    entries_per_page: int,
    detail_level: str = "ReturnAll",
    include_final_value_fee: bool = True,
    include_containing_order: bool = True,
) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<GetSellerTransactionsRequest xmlns="urn:ebay:apis:eBLBaseComponents">'
        f"<DetailLevel>{_xml_text(detail_level)}</DetailLevel>"
        f"<ModTimeFrom>{_iso(mod_time_from)}</ModTimeFrom>"
        f"<ModTimeTo>{_iso(mod_time_to)}</ModTimeTo>"
        "<Pagination>"
        f"<EntriesPerPage>{int(entries_per_page)}</EntriesPerPage>"
        f"<PageNumber>{int(page_number)}</PageNumber>"
        "</Pagination>"
        f"<IncludeFinalValueFee>{str(include_final_value_fee).lower()}</IncludeFinalValueFee>"
        f"<IncludeContainingOrder>{str(include_containing_order).lower()}</IncludeContainingOrder>"
        "</GetSellerTransactionsRequest>"
    )


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def element_to_value(elem: ET.Element) -> Any:
    """Convert one element (recursively) to str / dict / list values."""
    children = list(elem)
    text = (elem.text or "").strip()

    if not children:
        if elem.attrib:
            return {"value": text, **{_local_name(k): v for k, v in elem.attrib.items()}}
        return text

    out: dict[str, Any] = {_local_name(k): v for k, v in elem.attrib.items()}
    for child in children:
        key = _local_name(child.tag)
        value = element_to_value(child)
        if key in out:
            existing = out[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                out[key] = [existing, value]
        else:
            out[key] = value
    return out


def _to_int(value: str | None, default: int) -> int:
    try:
        return int((value or "").strip())
    except ValueError:
        return default


def _raise_for_errors(root: ET.Element) -> None:
    ack = root.findtext("e:Ack", default="", namespaces=NS)
    errors: list[str] = []
    codes: list[str] = []

    for err in root.findall("e:Errors", namespaces=NS):
        severity = err.findtext("e:SeverityCode", default="Error", namespaces=NS)
        message = (
            err.findtext("e:LongMessage", default="", namespaces=NS)
            or err.findtext("e:ShortMessage", default="", namespaces=NS)
            or "Unknown eBay API error"
        )
        code = err.findtext("e:ErrorCode", default="", namespaces=NS)
        if severity == "Warning":
            logger.warning("ebay_api_warning", code=code, message=message)
            continue
        errors.append(message)
        if code:
            codes.append(code)

    if not errors and ack == "Failure":
        errors.append("Unknown eBay API error")

    if errors:
        status_code = 401 if _AUTH_ERROR_CODES.intersection(codes) else None
        raise RemoteApiError(
            f"eBay API Error: {', '.join(errors)}",
            status_code=status_code,
            error_codes=codes,
        )


def parse_get_seller_transactions_response(xml_text: str) -> TransactionsPage:
    """
    Parse a GetSellerTransactions response body.

    Raises:
        RemoteApiError: Unparsable XML, or an error envelope in the body.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.error("ebay_response_parse_failed", error=str(e), body=xml_text[:500])
        raise RemoteApiError(f"Failed to parse eBay response: {e}") from e

    _raise_for_errors(root)

    records: list[dict[str, Any]] = []
    for node in root.findall("e:TransactionArray/e:Transaction", namespaces=NS):
        value = element_to_value(node)
        if isinstance(value, dict):
            records.append(value)

    total_pages = _to_int(
        root.findtext("e:PaginationResult/e:TotalNumberOfPages", namespaces=NS), 1
    )
    total_entries = _to_int(
        root.findtext("e:PaginationResult/e:TotalNumberOfEntries", namespaces=NS), 0
    )

    return TransactionsPage(
        records=records,
        total_pages=max(total_pages, 1),
        total_entries=max(total_entries, 0),
    )
