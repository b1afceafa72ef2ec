from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from .budget_model import Account, BudgetWithSpending, Category, Transaction

ZERO = Decimal("0")
UNCATEGORIZED_NAME = "Uncategorized"


@dataclass(frozen=True)
class TransactionStats:
    total_income: Decimal
    total_expenses: Decimal
    net_balance: Decimal
    transaction_count: int


@dataclass(frozen=True)
class CategoryExpense:
    category_id: Optional[str]
    category_name: str
    total: Decimal
    percentage: float


@dataclass(frozen=True)
class FinancialSnapshot:
    """
    One consistent read of a user's ledger, shared by alerts, health score, and insights.

    Income, expense, and category figures cover every transaction up to `as_of`;
    only `window_transaction_count` is limited to the trailing observation
    window [window_start, window_end].
    """

    as_of: date
    window_start: date
    window_end: date
    current_budgets: List[BudgetWithSpending] = field(default_factory=list)
    transaction_stats: TransactionStats = field(
        default_factory=lambda: TransactionStats(ZERO, ZERO, ZERO, 0)
    )
    category_expenses: List[CategoryExpense] = field(default_factory=list)
    account_count: int = 0
    window_transaction_count: int = 0

    @property
    def savings_rate(self) -> float:
        return compute_savings_rate(self.transaction_stats)

    @property
    def observed_days(self) -> int:
        return max(1, (self.window_end - self.window_start).days + 1)

    @property
    def top_category(self) -> Optional[CategoryExpense]:
        return self.category_expenses[0] if self.category_expenses else None

    @property
    def over_budget_count(self) -> int:
        return sum(1 for item in self.current_budgets if item.is_over_budget)


def compute_transaction_stats(transactions: Iterable[Transaction]) -> TransactionStats:
    """
    Aggregate income, expense, and count figures for a set of transactions.

    Transfers count toward the transaction total but not toward income or expenses.
    """
    total_income = ZERO
    total_expenses = ZERO
    count = 0
    for transaction in transactions:
        count += 1
        if transaction.type == "income":
            total_income += transaction.amount
        elif transaction.type == "expense":
            total_expenses += transaction.amount

    return TransactionStats(
        total_income=total_income,
        total_expenses=total_expenses,
        net_balance=total_income - total_expenses,
        transaction_count=count,
    )


def compute_savings_rate(stats: TransactionStats) -> float:
    """Percent of income left after expenses; 0 when there is no income to compare against."""
    if stats.total_income <= 0:
        return 0.0
    return float((stats.total_income - stats.total_expenses) * 100 / stats.total_income)


def compute_category_expenses(
    transactions: Iterable[Transaction],
    categories: Iterable[Category] = (),
) -> List[CategoryExpense]:
    """
    Group expense transactions by category, largest share first.

    Returns:
        CategoryExpense rows whose percentages sum to 100 when any expense exists;
        an empty list when there are no expenses.
    """
    names: Dict[str, str] = {category.id: category.name for category in categories}
    totals: Dict[Optional[str], Decimal] = defaultdict(lambda: ZERO)
    for transaction in transactions:
        if transaction.type == "expense":
            totals[transaction.category_id] += transaction.amount

    grand_total = sum(totals.values(), ZERO)
    if grand_total <= 0:
        return []

    rows = [
        CategoryExpense(
            category_id=category_id,
            category_name=names.get(category_id, UNCATEGORIZED_NAME) if category_id else UNCATEGORIZED_NAME,
            total=total,
            percentage=float(total * 100 / grand_total),
        )
        for category_id, total in totals.items()
    ]
    return sorted(rows, key=lambda row: row.total, reverse=True)


def count_active_accounts(accounts: Iterable[Account]) -> int:
    return len({account.id for account in accounts if account.is_active})


def build_snapshot(
    *,
    as_of: date,
    window_start: date,
    current_budgets: Sequence[BudgetWithSpending],
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    accounts: Sequence[Account],
) -> FinancialSnapshot:
    to_date = [transaction for transaction in transactions if transaction.date <= as_of]
    window_count = sum(1 for transaction in to_date if transaction.date >= window_start)
    return FinancialSnapshot(
        as_of=as_of,
        window_start=window_start,
        window_end=as_of,
        current_budgets=list(current_budgets),
        transaction_stats=compute_transaction_stats(to_date),
        category_expenses=compute_category_expenses(to_date, categories),
        account_count=count_active_accounts(accounts),
        window_transaction_count=window_count,
    )
