from dealflow.engine.analytics import (
    category_analysis,
    dashboard_metrics,
    monthly_metrics,
    monthly_profit_trend,
    recent_activity,
    top_performing_items,
    trend,
)
from dealflow.engine.export import export_transactions_csv, export_transactions_json
from dealflow.engine.fees import compute_fees
from dealflow.engine.opportunity import evaluate_opportunity
from dealflow.engine.profit import apply_financials, compute_profit, compute_roi, update_item_cost
from dealflow.engine.risk import assess_risk

__all__ = [
    "apply_financials",
    "assess_risk",
    "category_analysis",
    "compute_fees",
    "compute_profit",
    "compute_roi",
    "dashboard_metrics",
    "evaluate_opportunity",
    "export_transactions_csv",
    "export_transactions_json",
    "monthly_metrics",
    "monthly_profit_trend",
    "recent_activity",
    "top_performing_items",
    "trend",
    "update_item_cost",
]
