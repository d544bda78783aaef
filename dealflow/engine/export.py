"""
DealFlow — Transaction export (CSV / JSON)
"""

from __future__ import annotations

import csv
import io
import json
from typing import Sequence

from pydantic import TypeAdapter

from dealflow.schemas import NormalizedTransaction

CSV_HEADERS = (
    "Transaction ID",
    "eBay Transaction ID",
    "eBay Item ID",
    "Title",
    "Sold Price",
    "Sold Date",
    "Listed Date",
    "Item Cost",
    "eBay Final Value Fee",
    "Payment Processing Fee",
    "Total eBay Fees",
    "Shipping Cost",
    "Shipping Service",
    "Net Profit",
    "Profit Margin (%)",
    "Days Listed",
    "Category",
    "Condition",
    "Notes",
    "Sync Status",
    "Synced At",
)

_TRANSACTIONS = TypeAdapter(list[NormalizedTransaction])


def _money(value) -> str:
    return f"{value:.2f}" if value is not None else ""


def export_transactions_csv(transactions: Sequence[NormalizedTransaction]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for tx in transactions:
        writer.writerow([
            tx.id,
            tx.external_transaction_id,
            tx.external_item_id,
            tx.title,
            _money(tx.sold_price),
            tx.sold_date.date().isoformat(),
            tx.listed_date.date().isoformat(),
            _money(tx.item_cost),
            _money(tx.fees.final_value_fee),
            _money(tx.fees.payment_processing_fee),
            _money(tx.fees.total),
            _money(tx.shipping_cost),
            tx.shipping_service,
            _money(tx.net_profit),
            _money(tx.profit_margin),
            tx.days_listed,
            tx.category,
            tx.condition,
            tx.notes or "",
            tx.sync_status.value,
            tx.synced_at.isoformat(),
        ])
    return buffer.getvalue()


def export_transactions_json(transactions: Sequence[NormalizedTransaction]) -> str:
    data = _TRANSACTIONS.dump_python(list(transactions), mode="json")
    return json.dumps(data, indent=2)
