from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .budget_model import HealthFactor, HealthRecommendation, HealthScore
from .financials import FinancialSnapshot

MAX_SCORE = 100
RECOMMENDATION_RATIO = 0.7
MAX_RECOMMENDATIONS = 3

# Lower bound (inclusive) -> grade, checked top down.
_GRADE_BANDS: Tuple[Tuple[int, str], ...] = ((90, "A+"), (80, "A"), (70, "B"), (60, "C"), (50, "D"))

_RECOMMENDATIONS: Dict[str, HealthRecommendation] = {
    "savings": HealthRecommendation(
        title="Improve Your Savings Rate",
        description="Try to save at least 20% of your income. Consider automating your savings.",
        action="Set up automatic transfers to a savings account",
    ),
    "budgets": HealthRecommendation(
        title="Create and Follow Budgets",
        description="Set up budgets for your major spending categories and track your progress.",
        action="Create your first budget in the Budgets section",
    ),
    "concentration": HealthRecommendation(
        title="Diversify Your Spending",
        description="Your spending is concentrated in one category. Consider reviewing if this is optimal.",
        action="Review your spending patterns in the Analytics section",
    ),
    "no_spending": HealthRecommendation(
        title="Record Your Expenses",
        description="There is no expense data for this period, so spending patterns cannot be assessed.",
        action="Add recent expenses in the Transactions section",
    ),
    "accounts": HealthRecommendation(
        title="Set Up Multiple Accounts",
        description="Consider separating your finances with checking, savings, and investment accounts.",
        action="Add more accounts in the Accounts section",
    ),
    "tracking": HealthRecommendation(
        title="Track More Transactions",
        description="The more transactions you track, the better insights you'll get about your finances.",
        action="Add recent transactions in the Transactions section",
    ),
}


@dataclass(frozen=True)
class AggregateFinancials:
    """
    Pre-computed inputs to the health rubric.

    Attributes:
        savings_rate: Percent of all recorded income that was not spent.
        budget_count: Number of current budgets.
        on_track_count: Current budgets not over their limit.
        top_category_share: Percent of expenses in the largest category, None without expense data.
        account_count: Distinct active accounts.
        transaction_count: Every transaction recorded up to the snapshot date.
    """

    savings_rate: float
    budget_count: int
    on_track_count: int
    top_category_share: Optional[float]
    account_count: int
    transaction_count: int


def aggregate_from_snapshot(snapshot: FinancialSnapshot) -> AggregateFinancials:
    budgets = snapshot.current_budgets
    top_category = snapshot.top_category
    return AggregateFinancials(
        savings_rate=snapshot.savings_rate,
        budget_count=len(budgets),
        on_track_count=sum(1 for item in budgets if not item.is_over_budget),
        top_category_share=top_category.percentage if top_category else None,
        account_count=snapshot.account_count,
        transaction_count=snapshot.transaction_stats.transaction_count,
    )


def _score_savings(savings_rate: float) -> Tuple[str, HealthFactor]:
    if savings_rate >= 20:
        return "savings", HealthFactor("Excellent Savings Rate", 25, 25)
    if savings_rate >= 10:
        return "savings", HealthFactor("Good Savings Rate", 15, 25)
    if savings_rate >= 5:
        return "savings", HealthFactor("Fair Savings Rate", 10, 25)
    return "savings", HealthFactor("Low Savings Rate", 0, 25)


def _score_adherence(budget_count: int, on_track_count: int) -> Tuple[str, HealthFactor]:
    if budget_count <= 0:
        return "budgets", HealthFactor("No Budgets Set", 0, 25)

    on_track_percentage = on_track_count * 100 / budget_count
    if on_track_percentage >= 90:
        return "budgets", HealthFactor("Excellent Budget Control", 25, 25)
    if on_track_percentage >= 70:
        return "budgets", HealthFactor("Good Budget Control", 20, 25)
    if on_track_percentage >= 50:
        return "budgets", HealthFactor("Fair Budget Control", 15, 25)
    return "budgets", HealthFactor("Poor Budget Control", 5, 25)


def _score_concentration(top_category_share: Optional[float]) -> Tuple[str, HealthFactor]:
    if top_category_share is None:
        return "no_spending", HealthFactor("No Spending Data", 0, 20)
    if top_category_share <= 30:
        return "concentration", HealthFactor("Well Diversified Spending", 20, 20)
    if top_category_share <= 50:
        return "concentration", HealthFactor("Moderately Diversified Spending", 15, 20)
    return "concentration", HealthFactor("Concentrated Spending", 5, 20)


def _score_accounts(account_count: int) -> Tuple[str, HealthFactor]:
    if account_count >= 3:
        return "accounts", HealthFactor("Good Account Diversification", 15, 15)
    if account_count >= 2:
        return "accounts", HealthFactor("Basic Account Setup", 10, 15)
    return "accounts", HealthFactor("Limited Account Setup", 5, 15)


def _score_tracking(transaction_count: int) -> Tuple[str, HealthFactor]:
    if transaction_count >= 50:
        return "tracking", HealthFactor("Excellent Transaction Tracking", 15, 15)
    if transaction_count >= 20:
        return "tracking", HealthFactor("Good Transaction Tracking", 10, 15)
    if transaction_count >= 10:
        return "tracking", HealthFactor("Basic Transaction Tracking", 5, 15)
    return "tracking", HealthFactor("Limited Transaction Data", 0, 15)


def grade_for_score(score: int) -> str:
    for lower_bound, grade in _GRADE_BANDS:
        if score >= lower_bound:
            return grade
    return "F"


def recommend(scored_factors: List[Tuple[str, HealthFactor]]) -> List[HealthRecommendation]:
    """
    One recommendation per factor under 70% of its maximum, weakest factors first, at most three.
    """
    weak = [
        (key, factor)
        for key, factor in scored_factors
        if factor.points / factor.max_points < RECOMMENDATION_RATIO
    ]
    weak.sort(key=lambda entry: entry[1].points / entry[1].max_points)
    return [_RECOMMENDATIONS[key] for key, _ in weak[:MAX_RECOMMENDATIONS]]


def compute_health_score(financials: AggregateFinancials) -> HealthScore:
    """
    Score a household's financial health out of 100 using five independent factors.

    Args:
        financials: AggregateFinancials derived from one ledger snapshot.
    Returns:
        HealthScore whose score equals the sum of its factor points, plus a letter
        grade and up to three recommendations.
    """
    scored_factors = [
        _score_savings(financials.savings_rate),
        _score_adherence(financials.budget_count, financials.on_track_count),
        _score_concentration(financials.top_category_share),
        _score_accounts(financials.account_count),
        _score_tracking(financials.transaction_count),
    ]
    factors = [factor for _, factor in scored_factors]
    score = min(MAX_SCORE, max(0, sum(factor.points for factor in factors)))

    return HealthScore(
        score=score,
        grade=grade_for_score(score),
        factors=factors,
        recommendations=recommend(scored_factors),
        max_score=MAX_SCORE,
    )
