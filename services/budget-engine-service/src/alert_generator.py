from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Tuple

from .budget_model import (
    DEFAULT_ALERT_PERCENTAGE,
    AlertPriority,
    AlertType,
    BudgetAlert,
    BudgetWithSpending,
)

_PRIORITY_RANK = {"low": 1, "medium": 2, "high": 3}

EXCEEDED_THRESHOLD = 100.0
WARNING_THRESHOLD = 90.0
MEDIUM_PRIORITY_THRESHOLD = 85.0


def alert_threshold(item: BudgetWithSpending) -> float:
    threshold = item.budget.alert_percentage
    return DEFAULT_ALERT_PERCENTAGE if threshold is None else float(threshold)


def is_alert_eligible(item: BudgetWithSpending) -> bool:
    return item.budget.alert_enabled and item.percentage_used >= alert_threshold(item)


def classify_alert(percentage_used: float, remaining: Decimal) -> Tuple[AlertType, AlertPriority, str]:
    """
    Map an eligible budget's usage onto (type, priority, message).

    Bands are checked from the top down so each eligible budget lands in exactly one.
    """
    if percentage_used >= EXCEEDED_THRESHOLD:
        return "exceeded", "high", f"Budget exceeded by {percentage_used - 100:.1f}%"
    if percentage_used >= WARNING_THRESHOLD:
        return "warning", "high", f"Only {remaining:.2f} left in this budget"
    priority: AlertPriority = "medium" if percentage_used >= MEDIUM_PRIORITY_THRESHOLD else "low"
    return "approaching", priority, f"Budget {percentage_used:.1f}% used"


def generate_alerts(budgets_with_spending: Iterable[BudgetWithSpending]) -> List[BudgetAlert]:
    """
    Produce alerts for budgets at or over their alert threshold, highest priority first.

    Ties keep the input order (Python's sort is stable).
    """
    alerts: List[BudgetAlert] = []
    for item in budgets_with_spending:
        if not is_alert_eligible(item):
            continue

        alert_type, priority, message = classify_alert(item.percentage_used, item.remaining)
        alerts.append(
            BudgetAlert(
                id=item.id,
                name=item.name,
                type=alert_type,
                priority=priority,
                message=message,
                amount=item.amount,
                spent=item.actual_spent,
                remaining=item.remaining,
                percentage=item.percentage_used,
                days_remaining=item.days_remaining,
            )
        )

    return sorted(alerts, key=lambda alert: _PRIORITY_RANK[alert.priority], reverse=True)
