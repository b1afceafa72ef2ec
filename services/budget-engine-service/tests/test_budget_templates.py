from datetime import date
from decimal import Decimal

import pytest
from ledger_fakes import InMemoryLedger, make_budget

from src.budget_model import BudgetTemplate, SpecificCategories
from src.budget_templates import BudgetTemplateEngine, template_from_budget
from src.errors import CollaboratorFailure, InvalidBudget, InvalidRequest, NotFound

TODAY = date(2024, 3, 15)


def _template(**overrides) -> BudgetTemplate:
    values = {
        "name": "Groceries",
        "amount": Decimal("400"),
        "categories": SpecificCategories(frozenset({"cat-food"})),
        "alert_percentage": 75.0,
    }
    values.update(overrides)
    return BudgetTemplate(**values)


@pytest.mark.anyio
async def test_duplicate_copies_settings_into_a_fresh_window(ledger: InMemoryLedger) -> None:
    ledger.add_budget(make_budget("b-1", categories=["cat-food"], alert_percentage=70.0))
    templates = BudgetTemplateEngine(ledger)

    copy = await templates.duplicate("user-1", "b-1", today=TODAY)

    assert copy.id != "b-1"
    assert copy.name == "Groceries (Copy)"
    assert copy.start_date == TODAY
    assert copy.end_date == date(2024, 4, 15)
    assert copy.amount == Decimal("1000")
    assert copy.categories == SpecificCategories(frozenset({"cat-food"}))
    assert copy.alert_percentage == 70.0
    assert ledger.budgets["b-1"].name == "Groceries"


@pytest.mark.anyio
async def test_duplicate_end_date_clamps_at_month_end(ledger: InMemoryLedger) -> None:
    ledger.add_budget(make_budget("b-1"))

    copy = await BudgetTemplateEngine(ledger).duplicate("user-1", "b-1", today=date(2024, 1, 31))

    assert copy.end_date == date(2024, 2, 29)


@pytest.mark.anyio
async def test_duplicate_missing_budget_raises_not_found(ledger: InMemoryLedger) -> None:
    with pytest.raises(NotFound):
        await BudgetTemplateEngine(ledger).duplicate("user-1", "nope", today=TODAY)


@pytest.mark.anyio
async def test_recurring_creates_one_budget_per_calendar_month(ledger: InMemoryLedger) -> None:
    created = await BudgetTemplateEngine(ledger).create_recurring("user-1", _template(), 3, today=TODAY)

    assert [budget.name for budget in created] == [
        "Groceries - March 2024",
        "Groceries - April 2024",
        "Groceries - May 2024",
    ]
    assert [(budget.start_date, budget.end_date) for budget in created] == [
        (date(2024, 3, 1), date(2024, 3, 31)),
        (date(2024, 4, 1), date(2024, 4, 30)),
        (date(2024, 5, 1), date(2024, 5, 31)),
    ]
    assert all(budget.alert_percentage == 75.0 for budget in created)
    assert len(ledger.budgets) == 3


@pytest.mark.anyio
async def test_recurring_requires_positive_month_count(ledger: InMemoryLedger) -> None:
    with pytest.raises(InvalidRequest):
        await BudgetTemplateEngine(ledger).create_recurring("user-1", _template(), 0, today=TODAY)


@pytest.mark.anyio
async def test_recurring_validates_template_before_writing(ledger: InMemoryLedger) -> None:
    with pytest.raises(InvalidBudget):
        await BudgetTemplateEngine(ledger).create_recurring(
            "user-1", _template(amount=Decimal("0")), 2, today=TODAY
        )

    assert ledger.budgets == {}


@pytest.mark.anyio
async def test_partial_failure_keeps_created_budgets_and_raises(ledger: InMemoryLedger) -> None:
    ledger.fail_creation_for = {"Groceries - April 2024"}

    with pytest.raises(CollaboratorFailure):
        await BudgetTemplateEngine(ledger).create_recurring("user-1", _template(), 3, today=TODAY)

    names = sorted(budget.name for budget in ledger.budgets.values())
    assert names == ["Groceries - March 2024", "Groceries - May 2024"]


@pytest.mark.anyio
async def test_previous_month_rollover_copies_full_month_budgets(ledger: InMemoryLedger) -> None:
    ledger.add_budget(make_budget("feb-food", name="Food", start=date(2024, 2, 1), end=date(2024, 2, 29)))
    ledger.add_budget(make_budget("feb-fun", name="Fun", amount="150", start=date(2024, 2, 1), end=date(2024, 2, 29)))
    ledger.add_budget(make_budget("feb-week", name="Trip", start=date(2024, 2, 5), end=date(2024, 2, 11)))

    created = await BudgetTemplateEngine(ledger).create_from_previous_month("user-1", "2024-03", today=TODAY)

    assert sorted(budget.name for budget in created) == ["Food", "Fun"]
    assert all(budget.start_date == date(2024, 3, 1) for budget in created)
    assert all(budget.end_date == date(2024, 3, 31) for budget in created)


@pytest.mark.anyio
async def test_previous_month_defaults_to_todays_month(ledger: InMemoryLedger) -> None:
    ledger.add_budget(make_budget("feb", start=date(2024, 2, 1), end=date(2024, 2, 29)))

    created = await BudgetTemplateEngine(ledger).create_from_previous_month("user-1", today=TODAY)

    assert created[0].start_date == date(2024, 3, 1)


@pytest.mark.anyio
async def test_previous_month_without_sources_raises_not_found(ledger: InMemoryLedger) -> None:
    with pytest.raises(NotFound, match="February 2024"):
        await BudgetTemplateEngine(ledger).create_from_previous_month("user-1", today=TODAY)


def test_template_from_budget_drops_identity_and_window() -> None:
    template = template_from_budget(make_budget(categories=["cat-food"]))

    assert template.name == "Groceries"
    assert template.period == "month"
    assert not hasattr(template, "start_date")
