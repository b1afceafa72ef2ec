from datetime import date
from decimal import Decimal

import pytest
from ledger_fakes import expense, income, make_budget

from src.budget_model import Account, Category
from src.financials import build_snapshot
from src.health_score import AggregateFinancials, aggregate_from_snapshot, compute_health_score, grade_for_score
from src.spend_calculator import apply_spending


def _financials(**overrides) -> AggregateFinancials:
    values = {
        "savings_rate": 25.0,
        "budget_count": 2,
        "on_track_count": 2,
        "top_category_share": 35.0,
        "account_count": 3,
        "transaction_count": 60,
    }
    values.update(overrides)
    return AggregateFinancials(**values)


def test_healthy_household_scores_ninety_five() -> None:
    health = compute_health_score(_financials())

    assert health.score == 95
    assert health.grade == "A+"
    assert health.max_score == 100
    assert [factor.points for factor in health.factors] == [25, 25, 15, 15, 15]
    assert health.recommendations == []


def test_score_is_sum_of_factor_points() -> None:
    health = compute_health_score(
        _financials(savings_rate=7.0, on_track_count=1, top_category_share=55.0, account_count=2, transaction_count=12)
    )

    assert health.score == sum(factor.points for factor in health.factors)
    assert health.score == 10 + 15 + 5 + 10 + 5


def test_no_budgets_recommends_creating_budgets() -> None:
    health = compute_health_score(_financials(budget_count=0, on_track_count=0))

    adherence = health.factors[1]
    assert adherence.name == "No Budgets Set"
    assert adherence.points == 0
    assert health.recommendations[0].title == "Create and Follow Budgets"


def test_missing_expense_data_is_not_treated_as_diversified() -> None:
    health = compute_health_score(_financials(top_category_share=None))

    assert health.factors[2].name == "No Spending Data"
    assert health.factors[2].points == 0
    assert any(item.title == "Record Your Expenses" for item in health.recommendations)


def test_recommendations_limited_to_three_weakest_factors() -> None:
    health = compute_health_score(
        _financials(
            savings_rate=0.0,
            budget_count=0,
            on_track_count=0,
            top_category_share=80.0,
            account_count=1,
            transaction_count=0,
        )
    )

    assert len(health.recommendations) == 3
    # Zero-point factors come first, in rubric order.
    assert [item.title for item in health.recommendations] == [
        "Improve Your Savings Rate",
        "Create and Follow Budgets",
        "Track More Transactions",
    ]
    assert health.grade == "F"


@pytest.mark.parametrize(
    ("score", "grade"),
    [(100, "A+"), (90, "A+"), (89, "A"), (80, "A"), (75, "B"), (60, "C"), (55, "D"), (49, "F"), (0, "F")],
)
def test_grade_bands(score: int, grade: str) -> None:
    assert grade_for_score(score) == grade


def test_aggregate_from_snapshot_uses_all_time_figures() -> None:
    as_of = date(2024, 3, 30)
    window_start = date(2024, 3, 1)
    over = apply_spending(make_budget("over"), [expense("1500", date(2024, 3, 5))], today=as_of)
    fine = apply_spending(make_budget("fine"), [expense("100", date(2024, 3, 5))], today=as_of)
    transactions = [
        income("4000", date(2024, 3, 1)),
        expense("1000", date(2024, 3, 2), category_id="cat-rent"),
        expense("1000", date(2024, 3, 3), category_id="cat-food"),
        income("6000", date(2024, 1, 15)),
        expense("2000", date(2024, 2, 20), category_id="cat-rent"),
        expense("9999", date(2024, 4, 2), category_id="cat-rent"),
    ]

    snapshot = build_snapshot(
        as_of=as_of,
        window_start=window_start,
        current_budgets=[over, fine],
        transactions=transactions,
        categories=[Category("cat-rent", "Rent"), Category("cat-food", "Food")],
        accounts=[Account("a1", "checking"), Account("a1", "checking"), Account("a2", "savings", is_active=False)],
    )
    aggregate = aggregate_from_snapshot(snapshot)

    assert snapshot.transaction_stats.total_income == Decimal("10000")
    assert snapshot.transaction_stats.total_expenses == Decimal("4000")
    assert snapshot.window_transaction_count == 3
    assert aggregate.savings_rate == pytest.approx(60.0)
    assert aggregate.budget_count == 2
    assert aggregate.on_track_count == 1
    assert aggregate.top_category_share == pytest.approx(75.0)
    assert aggregate.account_count == 1
    assert aggregate.transaction_count == 5
