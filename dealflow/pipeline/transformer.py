"""
DealFlow — Transaction Transformer

Raw GetSellerTransactions record → NormalizedTransaction (pre-fee fields).

Every field passes through WireValue exactly once. A field can arrive as a
number, a numeric string, or a {"value": ...} wrapper; WireValue tags which
one it saw and exposes lenient accessors. Only a missing transaction id or an
undeterminable sold price fails the record.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Mapping

import structlog
from pydantic import BaseModel, Field

from dealflow.errors import TransformError
from dealflow.schemas import NormalizedTransaction, TransactionSyncStatus, utcnow

logger = structlog.get_logger(__name__)

_TWO_DP = Decimal("0.01")
_ZERO = Decimal("0")
_SECONDS_PER_DAY = 86400

DEFAULT_TITLE = "Untitled Item"
DEFAULT_CATEGORY = "Other"
DEFAULT_CONDITION = "Used"
DEFAULT_SHIPPING_SERVICE = "Standard Shipping"


class WireKind(str, Enum):
    MISSING = "missing"
    NUMBER = "number"
    TEXT = "text"
    WRAPPED = "wrapped"


class WireValue(BaseModel):
    """One field as it appeared on the wire."""

    kind: WireKind
    raw: str | None = None
    attributes: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_wire(cls, obj: Any) -> WireValue:
        if obj is None:
            return cls(kind=WireKind.MISSING)
        if isinstance(obj, list):
            return cls.from_wire(obj[0]) if obj else cls(kind=WireKind.MISSING)
        if isinstance(obj, bool):
            return cls(kind=WireKind.TEXT, raw=str(obj).lower())
        if isinstance(obj, (int, float, Decimal)):
            return cls(kind=WireKind.NUMBER, raw=str(obj))
        if isinstance(obj, str):
            text = obj.strip()
            if not text:
                return cls(kind=WireKind.MISSING)
            return cls(kind=WireKind.TEXT, raw=text)
        if isinstance(obj, Mapping):
            if obj.get("value") is None:
                return cls(kind=WireKind.MISSING)
            attributes = {
                str(k): str(v)
                for k, v in obj.items()
                if k != "value" and isinstance(v, (str, int, float))
            }
            return cls(
                kind=WireKind.WRAPPED,
                raw=str(obj["value"]).strip(),
                attributes=attributes,
            )
        return cls(kind=WireKind.TEXT, raw=str(obj))

    @property
    def present(self) -> bool:
        return self.kind != WireKind.MISSING and bool(self.raw)

    def as_decimal(self) -> Decimal | None:
        """Parsed number, or None when absent / unparsable / not finite."""
        if not self.present:
            return None
        cleaned = self.raw.replace(",", "").lstrip("$")
        try:
            value = Decimal(cleaned)
        except InvalidOperation:
            return None
        if not value.is_finite():
            return None
        return value

    def as_amount(self) -> Decimal:
        """Money field: unparsable or absent values count as 0."""
        value = self.as_decimal()
        if value is None:
            return _ZERO
        try:
            return value.quantize(_TWO_DP, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            # too many digits for the decimal context
            return _ZERO

    def as_text(self, default: str = "") -> str:
        return self.raw if self.present else default

    def as_datetime(self) -> datetime | None:
        if not self.present:
            return None
        try:
            parsed = datetime.fromisoformat(self.raw.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)


def _dig(record: Mapping[str, Any], *path: str) -> Any:
    node: Any = record
    for key in path:
        if isinstance(node, list):
            node = node[0] if node else None
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _field(record: Mapping[str, Any], *path: str) -> WireValue:
    return WireValue.from_wire(_dig(record, *path))


def calculate_days_listed(listed_date: datetime, sold_date: datetime) -> int:
    """Whole days between listing and sale, rounded up, never negative."""
    seconds = (sold_date - listed_date).total_seconds()
    return max(0, math.ceil(seconds / _SECONDS_PER_DAY))


def normalize(
    raw: Mapping[str, Any],
    now: datetime | None = None,
) -> NormalizedTransaction:
    """
    Convert one raw marketplace record into a NormalizedTransaction.

    Fees, net profit and margin are left at zero; engine.profit.apply_financials
    fills them in.

    Raises:
        TransformError: No transaction id, or the sold price is missing,
            unparsable or negative.
    """
    transaction_id = _field(raw, "TransactionID").as_text()
    if not transaction_id:
        raise TransformError("Transaction has no TransactionID")

    price = _field(raw, "TransactionPrice").as_decimal()
    if price is not None:
        try:
            price = price.quantize(_TWO_DP, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            price = None
    if price is None:
        raise TransformError(
            f"Transaction {transaction_id} has no usable TransactionPrice",
            external_id=transaction_id,
        )
    if price < _ZERO:
        raise TransformError(
            f"Transaction {transaction_id} has negative TransactionPrice {price}",
            external_id=transaction_id,
        )

    now = now or utcnow()
    sold_date = (
        _field(raw, "CreatedDate").as_datetime()
        or _field(raw, "PaidTime").as_datetime()
        or now
    )
    listed_date = _field(raw, "Item", "ListingDetails", "StartTime").as_datetime() or sold_date

    actual_shipping = _field(raw, "ActualShippingCost")
    if not actual_shipping.present:
        actual_shipping = _field(raw, "ShippingServiceSelected", "ShippingServiceCost")

    tx = NormalizedTransaction(
        external_transaction_id=transaction_id,
        external_item_id=_field(raw, "Item", "ItemID").as_text(),
        title=_field(raw, "Item", "Title").as_text(DEFAULT_TITLE),
        sold_price=price,
        sold_date=sold_date,
        listed_date=listed_date,
        shipping_cost=actual_shipping.as_amount(),
        shipping_service=_field(raw, "ShippingServiceSelected", "ShippingService").as_text(
            DEFAULT_SHIPPING_SERVICE
        ),
        category=_field(raw, "Item", "PrimaryCategory", "CategoryName").as_text(DEFAULT_CATEGORY),
        condition=_field(raw, "Item", "ConditionDisplayName").as_text(DEFAULT_CONDITION),
        days_listed=calculate_days_listed(listed_date, sold_date),
        synced_at=now,
        sync_status=TransactionSyncStatus.SYNCED,
    )

    logger.debug(
        "transaction_normalized",
        external_transaction_id=tx.external_transaction_id,
        sold_price=str(tx.sold_price),
        category=tx.category,
        days_listed=tx.days_listed,
    )
    return tx
