from datetime import date, timedelta

from ledger_fakes import expense, income, make_budget

from src.budget_model import Category
from src.financials import build_snapshot
from src.insights import generate_insights
from src.spend_calculator import apply_spending

AS_OF = date(2024, 3, 30)
WINDOW_START = date(2024, 3, 1)


def _snapshot(transactions, current_budgets=(), categories=()):
    return build_snapshot(
        as_of=AS_OF,
        window_start=WINDOW_START,
        current_budgets=list(current_budgets),
        transactions=transactions,
        categories=list(categories),
        accounts=[],
    )


def test_high_savings_rate_is_celebrated() -> None:
    snapshot = _snapshot(
        [income("5000", date(2024, 3, 1)), expense("1000", date(2024, 3, 2), category_id="a")]
        + [expense("1000", date(2024, 3, 3), category_id=name) for name in ("b", "c")]
    )

    insights = generate_insights(snapshot)

    assert insights[0].type == "positive"
    assert insights[0].title == "Great Savings Rate!"
    assert "40.0%" in insights[0].message


def test_low_positive_savings_rate_warns() -> None:
    snapshot = _snapshot(
        [income("1000", date(2024, 3, 1))]
        + [expense("310", date(2024, 3, 2), category_id=name) for name in ("a", "b", "c")]
    )

    assert generate_insights(snapshot)[0].title == "Low Savings Rate"


def test_no_income_counts_as_negative_savings() -> None:
    insights = generate_insights(_snapshot([]))

    assert [insight.title for insight in insights] == ["Negative Savings"]


def test_moderate_savings_rate_produces_no_savings_card() -> None:
    snapshot = _snapshot(
        [income("1000", date(2024, 3, 1))]
        + [
            expense("300", date(2024, 3, 2), category_id="a"),
            expense("300", date(2024, 3, 2), category_id="b"),
            expense("250", date(2024, 3, 2), category_id="c"),
        ]
    )

    assert generate_insights(snapshot) == []


def test_overruns_and_category_concentration() -> None:
    over = [
        apply_spending(make_budget(name), [expense("2000", date(2024, 3, 5))], today=AS_OF)
        for name in ("one", "two")
    ]
    snapshot = _snapshot(
        [income("1000", date(2024, 3, 1)), expense("950", date(2024, 3, 4), category_id="cat-food")],
        current_budgets=over,
        categories=[Category("cat-food", "Food")],
    )

    insights = generate_insights(snapshot)
    titles = [insight.title for insight in insights]

    assert titles == ["Low Savings Rate", "Budget Overruns", "High Category Spending"]
    assert insights[1].message == "2 budgets are over limit. Review your spending."
    assert insights[2].message == "Food accounts for 100.0% of your expenses."


def test_frequency_insight_and_cap_of_four() -> None:
    over = [apply_spending(make_budget(), [expense("2000", date(2024, 3, 5))], today=AS_OF)]
    busy_days = [WINDOW_START + timedelta(days=offset) for offset in range(30)]
    transactions = [income("100000", WINDOW_START)] + [
        expense("1", day, category_id="cat-food", transaction_id=f"t-{day}-{n}") for day in busy_days for n in range(6)
    ]

    insights = generate_insights(_snapshot(transactions, current_budgets=over))

    assert len(insights) == 4
    assert [insight.title for insight in insights] == [
        "Great Savings Rate!",
        "Budget Overruns",
        "High Category Spending",
        "High Transaction Frequency",
    ]
    assert insights[1].message == "1 budget is over limit. Review your spending."


def test_frequency_counts_only_the_observation_window() -> None:
    history = [
        expense(
            "1",
            date(2024, 1, 1) + timedelta(days=offset % 40),
            category_id=f"c{offset % 3}",
            transaction_id=f"old-{offset}",
        )
        for offset in range(400)
    ]
    transactions = [income("100000", WINDOW_START)] + history

    snapshot = _snapshot(transactions)
    titles = [insight.title for insight in generate_insights(snapshot)]

    assert snapshot.transaction_stats.transaction_count == 401
    assert snapshot.window_transaction_count == 1
    assert "High Transaction Frequency" not in titles
