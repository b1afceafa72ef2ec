from __future__ import annotations

import asyncio
import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from .budget_model import (
    Budget,
    BudgetWithSpending,
    SpendingSummary,
    Transaction,
    validate_budget,
)
from .errors import InvalidBudget, NotFound
from .fan_out import gather_bounded
from .ledger import BudgetLedger

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _in_scope(budget: Budget, transaction: Transaction) -> bool:
    return (
        transaction.type == "expense"
        and budget.start_date <= transaction.date <= budget.end_date
        and budget.categories.matches(transaction.category_id)
    )


def scoped_expenses(budget: Budget, transactions: Iterable[Transaction]) -> List[Transaction]:
    """Keep only expense transactions that fall inside the budget window and category scope."""
    return [transaction for transaction in transactions if _in_scope(budget, transaction)]


def days_remaining(end_date: date, today: date) -> int:
    return max(0, (end_date - today).days)


def apply_spending(budget: Budget, transactions: Iterable[Transaction], *, today: date) -> BudgetWithSpending:
    """
    Derive spend figures for a budget from an already-fetched transaction snapshot.

    Args:
        budget: Budget whose window and category scope select the transactions.
        transactions: Any transactions; out-of-scope rows are ignored.
        today: Reference date for `days_remaining`.
    Returns:
        BudgetWithSpending composed around the untouched budget.
    Assumptions:
        A zero amount yields 0% used rather than a division error.
    """
    actual_spent = sum((transaction.amount for transaction in scoped_expenses(budget, transactions)), ZERO)
    remaining = budget.amount - actual_spent
    percentage_used = float(actual_spent * 100 / budget.amount) if budget.amount > 0 else 0.0

    return BudgetWithSpending(
        budget=budget,
        actual_spent=actual_spent,
        remaining=remaining,
        percentage_used=percentage_used,
        is_over_budget=percentage_used > 100,
        days_remaining=days_remaining(budget.end_date, today),
    )


def summarize_spending(budget: Budget, transactions: Iterable[Transaction]) -> SpendingSummary:
    """Total, count, and per-day average of in-scope spend across the whole budget window."""
    scoped = scoped_expenses(budget, transactions)
    total_spent = sum((transaction.amount for transaction in scoped), ZERO)
    window_days = max(1, (budget.end_date - budget.start_date).days)
    return SpendingSummary(
        total_spent=total_spent,
        transaction_count=len(scoped),
        average_per_day=total_spent / window_days,
    )


async def fetch_budget_expenses(budget: Budget, ledger: BudgetLedger) -> List[Transaction]:
    return await ledger.list_expense_transactions(
        budget.user_id,
        list(budget.categories.category_ids) if budget.categories.category_ids else None,
        budget.start_date,
        budget.end_date,
    )


async def compute_spending(budget: Budget, ledger: BudgetLedger, *, today: date) -> BudgetWithSpending:
    """
    Fetch the budget's expense transactions and compute its spend figures.

    Raises:
        InvalidBudget: before any I/O when the budget violates its invariants.
        CollaboratorFailure: propagated from the ledger untouched.
    """
    validate_budget(budget)
    transactions = await fetch_budget_expenses(budget, ledger)
    return apply_spending(budget, transactions, today=today)


async def compute_spending_for_id(
    user_id: str,
    budget_id: str,
    ledger: BudgetLedger,
    *,
    today: date,
) -> BudgetWithSpending:
    budget = await ledger.get_budget(user_id, budget_id)
    if budget is None:
        raise NotFound(f"Budget '{budget_id}' not found")
    return await compute_spending(budget, ledger, today=today)


def measurable_budgets(budgets: Sequence[Budget]) -> List[Budget]:
    """
    Stored budgets that spend figures can be computed for, in input order.

    Zero-amount rows are kept (they report 0% used). Rows with a negative amount,
    an inverted window, or an unknown period are logged and left out so one bad
    row does not hide the user's other budgets.
    """
    kept = []
    for budget in budgets:
        try:
            validate_budget(budget, allow_zero_amount=True)
        except InvalidBudget as exc:
            logger.warning({"event": "stored_budget_skipped", "budget_id": budget.id, "error": str(exc)})
            continue
        kept.append(budget)
    return kept


async def compute_spending_many(
    budgets: Sequence[Budget],
    ledger: BudgetLedger,
    *,
    today: date,
    max_concurrency: int = 8,
    limiter: Optional[asyncio.Semaphore] = None,
) -> List[BudgetWithSpending]:
    """
    Compute spend for stored budgets in parallel, returning results in input order.

    Args:
        budgets: Rows read from the ledger; unmeasurable ones are skipped.
        max_concurrency: Cap on concurrent ledger calls when no `limiter` is given.
        limiter: Semaphore shared with an enclosing fan-out.
    """
    measurable = measurable_budgets(budgets)

    async def _compute(budget: Budget) -> BudgetWithSpending:
        transactions = await fetch_budget_expenses(budget, ledger)
        return apply_spending(budget, transactions, today=today)

    results = await gather_bounded(measurable, _compute, max_concurrency=max_concurrency, limiter=limiter)
    logger.debug({"event": "spending_computed", "budget_count": len(results)})
    return results
