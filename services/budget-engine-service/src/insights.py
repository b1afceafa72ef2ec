from __future__ import annotations

from typing import List

from .budget_model import Insight
from .financials import FinancialSnapshot

MAX_INSIGHTS = 4
HIGH_SAVINGS_RATE = 20.0
LOW_SAVINGS_RATE = 10.0
HIGH_CATEGORY_SHARE = 40.0
HIGH_TRANSACTIONS_PER_DAY = 5.0


def _savings_insight(savings_rate: float) -> Insight | None:
    if savings_rate > HIGH_SAVINGS_RATE:
        return Insight(
            type="positive",
            title="Great Savings Rate!",
            message=f"You're saving {savings_rate:.1f}% of your income. Keep it up!",
            icon="trending-up",
        )
    if 0 < savings_rate < LOW_SAVINGS_RATE:
        return Insight(
            type="warning",
            title="Low Savings Rate",
            message=(
                f"Your savings rate is {savings_rate:.1f}%. "
                "Consider reducing expenses or increasing income."
            ),
            icon="alert-triangle",
        )
    if savings_rate <= 0:
        return Insight(
            type="negative",
            title="Negative Savings",
            message="You're spending more than you earn. Review your expenses and budget.",
            icon="alert-circle",
        )
    return None


def _overrun_insight(over_budget_count: int) -> Insight | None:
    if over_budget_count <= 0:
        return None
    verb = "budgets are" if over_budget_count > 1 else "budget is"
    return Insight(
        type="warning",
        title="Budget Overruns",
        message=f"{over_budget_count} {verb} over limit. Review your spending.",
        icon="alert-triangle",
    )


def _category_insight(snapshot: FinancialSnapshot) -> Insight | None:
    top_category = snapshot.top_category
    if top_category is None or top_category.percentage <= HIGH_CATEGORY_SHARE:
        return None
    return Insight(
        type="info",
        title="High Category Spending",
        message=f"{top_category.category_name} accounts for {top_category.percentage:.1f}% of your expenses.",
        icon="pie-chart",
    )


def _frequency_insight(snapshot: FinancialSnapshot) -> Insight | None:
    per_day = snapshot.window_transaction_count / snapshot.observed_days
    if per_day <= HIGH_TRANSACTIONS_PER_DAY:
        return None
    return Insight(
        type="info",
        title="High Transaction Frequency",
        message=f"You're making {per_day:.1f} transactions per day on average.",
        icon="activity",
    )


def generate_insights(snapshot: FinancialSnapshot) -> List[Insight]:
    """
    Turn a ledger snapshot into at most four short insight cards.

    Every rule is evaluated independently; results keep rule order (savings,
    overruns, category concentration, frequency) before truncation.
    """
    candidates = [
        _savings_insight(snapshot.savings_rate),
        _overrun_insight(snapshot.over_budget_count),
        _category_insight(snapshot),
        _frequency_insight(snapshot),
    ]
    return [insight for insight in candidates if insight is not None][:MAX_INSIGHTS]
