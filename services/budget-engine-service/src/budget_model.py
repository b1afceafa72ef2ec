from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import FrozenSet, Iterable, List, Literal, Optional, Union

from .errors import InvalidBudget

# Budget period options
BudgetPeriod = Literal["week", "month", "quarter", "year", "custom"]

TransactionType = Literal["income", "expense", "transfer"]

AlertType = Literal["approaching", "warning", "exceeded"]

AlertPriority = Literal["low", "medium", "high"]

InsightType = Literal["positive", "warning", "negative", "info"]

BUDGET_PERIODS: FrozenSet[str] = frozenset({"week", "month", "quarter", "year", "custom"})
DEFAULT_ALERT_PERCENTAGE = 80.0


@dataclass(frozen=True)
class AllCategories:
    """Scope for budgets that apply to every expense category."""

    @property
    def category_ids(self) -> None:
        return None

    def matches(self, category_id: Optional[str]) -> bool:
        return True


@dataclass(frozen=True)
class SpecificCategories:
    """Scope for budgets limited to an explicit, non-empty set of categories."""

    category_ids: FrozenSet[str]

    def __post_init__(self) -> None:
        ids = frozenset(self.category_ids)
        if not ids:
            raise InvalidBudget("SpecificCategories requires at least one category id; use AllCategories instead")
        object.__setattr__(self, "category_ids", ids)

    def matches(self, category_id: Optional[str]) -> bool:
        return category_id is not None and category_id in self.category_ids


CategoryScope = Union[AllCategories, SpecificCategories]


def category_scope_from_ids(category_ids: Optional[Iterable[str]]) -> CategoryScope:
    """Map a stored (possibly empty or null) category id list onto an explicit scope."""
    ids = frozenset(category_ids or ())
    if not ids:
        return AllCategories()
    return SpecificCategories(ids)


def category_ids_for_storage(scope: CategoryScope) -> Optional[List[str]]:
    """Inverse of `category_scope_from_ids`; sorted so stored rows are stable."""
    if isinstance(scope, SpecificCategories):
        return sorted(scope.category_ids)
    return None


@dataclass(frozen=True)
class BudgetDraft:
    """
    A budget definition that has not been persisted yet.

    The ledger assigns the identifier when `create_budget` stores it.
    """

    user_id: str
    name: str
    amount: Decimal
    period: BudgetPeriod
    start_date: date
    end_date: date
    categories: CategoryScope = field(default_factory=AllCategories)
    description: Optional[str] = None
    alert_percentage: float = DEFAULT_ALERT_PERCENTAGE
    alert_enabled: bool = True
    is_active: bool = True


@dataclass(frozen=True)
class Budget:
    """A persisted, user-scoped spending envelope."""

    id: str
    user_id: str
    name: str
    amount: Decimal
    period: BudgetPeriod
    start_date: date
    end_date: date
    categories: CategoryScope = field(default_factory=AllCategories)
    description: Optional[str] = None
    alert_percentage: float = DEFAULT_ALERT_PERCENTAGE
    alert_enabled: bool = True
    is_active: bool = True
    created_at: Optional[datetime] = None

    def is_current(self, today: date) -> bool:
        return self.is_active and self.start_date <= today <= self.end_date


def validate_settings(
    name: str,
    amount: Decimal,
    alert_percentage: float,
    period: str,
    *,
    allow_zero_amount: bool = False,
) -> None:
    """Checks shared by budgets, drafts, and saved templates."""
    if amount < 0 or (amount == 0 and not allow_zero_amount):
        raise InvalidBudget(f"Budget '{name}' must have a positive amount (received {amount})")
    if not 0 <= alert_percentage <= 100:
        raise InvalidBudget(
            f"Budget '{name}' alert percentage must be between 0 and 100 (received {alert_percentage})"
        )
    if period not in BUDGET_PERIODS:
        raise InvalidBudget(f"Budget '{name}' has unknown period '{period}'")


def validate_budget(budget: Union[Budget, BudgetDraft], *, allow_zero_amount: bool = False) -> None:
    """
    Reject budget definitions that would make spend figures meaningless.

    `allow_zero_amount` is for rows already in the ledger: a zero budget can
    still be measured (it reports 0% used), it just cannot be created.

    Raises:
        InvalidBudget: when amount <= 0, end_date < start_date, the alert threshold
            falls outside 0-100, or the period is not a known value.
    """
    validate_settings(
        budget.name,
        budget.amount,
        budget.alert_percentage,
        budget.period,
        allow_zero_amount=allow_zero_amount,
    )
    if budget.end_date < budget.start_date:
        raise InvalidBudget(
            f"Budget '{budget.name}' ends ({budget.end_date}) before it starts ({budget.start_date})"
        )


@dataclass(frozen=True)
class Transaction:
    id: str
    amount: Decimal
    type: TransactionType
    date: date
    category_id: Optional[str] = None
    account_id: Optional[str] = None


@dataclass(frozen=True)
class Account:
    id: str
    type: str
    include_in_total: bool = True
    is_active: bool = True


@dataclass(frozen=True)
class Category:
    id: str
    name: str


@dataclass(frozen=True)
class SpendingSummary:
    total_spent: Decimal
    transaction_count: int
    average_per_day: Decimal


@dataclass(frozen=True)
class BudgetWithSpending:
    """
    A budget together with the spend figures derived from its transaction window.

    Composed from an untouched Budget; nothing here is persisted.
    """

    budget: Budget
    actual_spent: Decimal
    remaining: Decimal
    percentage_used: float
    is_over_budget: bool
    days_remaining: int

    @property
    def id(self) -> str:
        return self.budget.id

    @property
    def name(self) -> str:
        return self.budget.name

    @property
    def amount(self) -> Decimal:
        return self.budget.amount


@dataclass(frozen=True)
class BudgetAlert:
    id: str
    name: str
    type: AlertType
    priority: AlertPriority
    message: str
    amount: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: float
    days_remaining: int


@dataclass(frozen=True)
class HealthFactor:
    name: str
    points: int
    max_points: int


@dataclass(frozen=True)
class HealthRecommendation:
    title: str
    description: str
    action: str


@dataclass(frozen=True)
class HealthScore:
    score: int
    grade: str
    factors: List[HealthFactor]
    recommendations: List[HealthRecommendation]
    max_score: int = 100


@dataclass(frozen=True)
class TrendPoint:
    period: str
    start_date: date
    end_date: date
    budgeted: Decimal
    spent: Decimal
    saved: Decimal
    savings_rate: float


@dataclass(frozen=True)
class Insight:
    type: InsightType
    title: str
    message: str
    icon: str


@dataclass(frozen=True)
class BudgetTemplate:
    """Reusable budget settings without a date window."""

    name: str
    amount: Decimal
    period: BudgetPeriod = "month"
    categories: CategoryScope = field(default_factory=AllCategories)
    description: Optional[str] = None
    alert_percentage: float = DEFAULT_ALERT_PERCENTAGE
    alert_enabled: bool = True


def validate_template(template: BudgetTemplate) -> None:
    validate_settings(template.name, template.amount, template.alert_percentage, template.period)


@dataclass(frozen=True)
class SavedTemplate:
    """
    A stored budget template from the user's library.

    Global templates have no owner, are visible to every user, and can only be
    read and used, never edited, by them.
    """

    id: str
    user_id: Optional[str]
    settings: BudgetTemplate
    is_global: bool = False
    is_active: bool = True
    usage_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.settings.name

    def is_visible_to(self, user_id: str) -> bool:
        return self.is_active and (self.is_global or self.user_id == user_id)


@dataclass(frozen=True)
class BudgetOverrides:
    """Per-budget adjustments applied on top of a saved template; None keeps the template value."""

    name: Optional[str] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    categories: Optional[CategoryScope] = None
    alert_percentage: Optional[float] = None
    alert_enabled: Optional[bool] = None


@dataclass(frozen=True)
class BudgetPerformance:
    total_budgets: int
    total_budget_amount: Decimal
    total_spent: Decimal
    budgets_over_limit: int
    budgets_on_track: int
    average_usage_percentage: float


@dataclass(frozen=True)
class BudgetStatusBreakdown:
    on_track: List[BudgetWithSpending]
    at_risk: List[BudgetWithSpending]
    over_budget: List[BudgetWithSpending]


@dataclass(frozen=True)
class BudgetHistoryEntry:
    budget: Budget
    final_spent: Decimal
    success_rate: float


@dataclass(frozen=True)
class UpcomingEvent:
    type: str
    title: str
    date: date
    priority: AlertPriority
    description: str
    budget_id: str
