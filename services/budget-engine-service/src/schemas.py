"""
Pydantic payloads for the HTTP surface and the remote ledger API.

Inbound and ledger payloads keep amounts as Decimal; outbound response models
use floats so dashboards receive plain JSON numbers.
"""

from __future__ import annotations

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .budget_model import (
    Account,
    Budget,
    BudgetAlert,
    BudgetDraft,
    BudgetHistoryEntry,
    BudgetOverrides,
    BudgetPerformance,
    BudgetStatusBreakdown,
    BudgetTemplate,
    BudgetWithSpending,
    Category,
    HealthScore,
    Insight,
    SavedTemplate,
    Transaction,
    TrendPoint,
    UpcomingEvent,
    category_ids_for_storage,
    category_scope_from_ids,
)

PeriodLiteral = Literal["week", "month", "quarter", "year", "custom"]


class BudgetModel(BaseModel):
    id: str
    user_id: str
    name: str
    description: str | None = None
    amount: Decimal
    period: PeriodLiteral
    start_date: date
    end_date: date
    category_ids: list[str] | None = None
    alert_percentage: float = 80.0
    alert_enabled: bool = True
    is_active: bool = True
    created_at: datetime | None = None

    def to_dataclass(self) -> Budget:
        return Budget(
            id=self.id,
            user_id=self.user_id,
            name=self.name,
            description=self.description,
            amount=self.amount,
            period=self.period,
            start_date=self.start_date,
            end_date=self.end_date,
            categories=category_scope_from_ids(self.category_ids),
            alert_percentage=self.alert_percentage,
            alert_enabled=self.alert_enabled,
            is_active=self.is_active,
            created_at=self.created_at,
        )


class BudgetDraftModel(BaseModel):
    user_id: str
    name: str
    description: str | None = None
    amount: Decimal
    period: PeriodLiteral
    start_date: date
    end_date: date
    category_ids: list[str] | None = None
    alert_percentage: float = 80.0
    alert_enabled: bool = True
    is_active: bool = True

    @classmethod
    def from_dataclass(cls, draft: BudgetDraft) -> "BudgetDraftModel":
        return cls(
            user_id=draft.user_id,
            name=draft.name,
            description=draft.description,
            amount=draft.amount,
            period=draft.period,
            start_date=draft.start_date,
            end_date=draft.end_date,
            category_ids=category_ids_for_storage(draft.categories),
            alert_percentage=draft.alert_percentage,
            alert_enabled=draft.alert_enabled,
            is_active=draft.is_active,
        )


class TransactionModel(BaseModel):
    id: str
    amount: Decimal
    type: Literal["income", "expense", "transfer"]
    date: dt.date
    category_id: str | None = None
    account_id: str | None = None

    def to_dataclass(self) -> Transaction:
        return Transaction(**self.model_dump())


class AccountModel(BaseModel):
    id: str
    type: str
    include_in_total: bool = True
    is_active: bool = True

    def to_dataclass(self) -> Account:
        return Account(**self.model_dump())


class CategoryModel(BaseModel):
    id: str
    name: str

    def to_dataclass(self) -> Category:
        return Category(**self.model_dump())


class BudgetTemplatePayload(BaseModel):
    name: str
    amount: Decimal
    period: PeriodLiteral = "month"
    description: str | None = None
    category_ids: list[str] | None = None
    alert_percentage: float = 80.0
    alert_enabled: bool = True

    def to_dataclass(self) -> BudgetTemplate:
        return BudgetTemplate(
            name=self.name,
            amount=self.amount,
            period=self.period,
            categories=category_scope_from_ids(self.category_ids),
            description=self.description,
            alert_percentage=self.alert_percentage,
            alert_enabled=self.alert_enabled,
        )

    @classmethod
    def from_dataclass(cls, template: BudgetTemplate) -> "BudgetTemplatePayload":
        return cls(
            name=template.name,
            amount=template.amount,
            period=template.period,
            description=template.description,
            category_ids=category_ids_for_storage(template.categories),
            alert_percentage=template.alert_percentage,
            alert_enabled=template.alert_enabled,
        )


class RecurringBudgetRequest(BaseModel):
    template: BudgetTemplatePayload
    months: int = Field(default=3, ge=1, le=36)


class FromPreviousMonthRequest(BaseModel):
    # "YYYY-MM"; defaults to the current month
    target_month: str | None = None


class SavedTemplateModel(BaseModel):
    """Template row as exchanged with the remote ledger API."""

    id: str
    user_id: str | None = None
    name: str
    description: str | None = None
    amount: Decimal
    period: PeriodLiteral = "month"
    category_ids: list[str] | None = None
    alert_percentage: float = 80.0
    alert_enabled: bool = True
    is_global: bool = False
    is_active: bool = True
    usage_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dataclass(self) -> SavedTemplate:
        return SavedTemplate(
            id=self.id,
            user_id=self.user_id,
            settings=BudgetTemplate(
                name=self.name,
                amount=self.amount,
                period=self.period,
                categories=category_scope_from_ids(self.category_ids),
                description=self.description,
                alert_percentage=self.alert_percentage,
                alert_enabled=self.alert_enabled,
            ),
            is_global=self.is_global,
            is_active=self.is_active,
            usage_count=self.usage_count,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class BudgetOverridesPayload(BaseModel):
    """Fields left unset keep the template's value; an empty category list means every category."""

    name: str | None = None
    amount: Decimal | None = None
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    category_ids: list[str] | None = None
    alert_percentage: float | None = None
    alert_enabled: bool | None = None

    def to_dataclass(self) -> BudgetOverrides:
        return BudgetOverrides(
            name=self.name,
            amount=self.amount,
            description=self.description,
            start_date=self.start_date,
            end_date=self.end_date,
            categories=None if self.category_ids is None else category_scope_from_ids(self.category_ids),
            alert_percentage=self.alert_percentage,
            alert_enabled=self.alert_enabled,
        )


class SaveAsTemplateRequest(BaseModel):
    # Defaults to the budget's own name
    name: str | None = None


class DuplicateTemplateRequest(BaseModel):
    new_name: str | None = None


class SavedTemplateResponseModel(BaseModel):
    id: str
    name: str
    description: str | None = None
    amount: float
    period: PeriodLiteral
    category_ids: list[str] | None = None
    alert_percentage: float
    alert_enabled: bool
    is_global: bool
    usage_count: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dataclass(cls, template: SavedTemplate) -> "SavedTemplateResponseModel":
        settings = template.settings
        return cls(
            id=template.id,
            name=settings.name,
            description=settings.description,
            amount=float(settings.amount),
            period=settings.period,
            category_ids=category_ids_for_storage(settings.categories),
            alert_percentage=settings.alert_percentage,
            alert_enabled=settings.alert_enabled,
            is_global=template.is_global,
            usage_count=template.usage_count,
            created_at=template.created_at,
            updated_at=template.updated_at,
        )


class BudgetResponseModel(BaseModel):
    id: str
    name: str
    description: str | None = None
    amount: float
    period: PeriodLiteral
    start_date: date
    end_date: date
    category_ids: list[str] | None = None
    alert_percentage: float
    alert_enabled: bool
    is_active: bool

    @classmethod
    def from_dataclass(cls, budget: Budget) -> "BudgetResponseModel":
        return cls(
            id=budget.id,
            name=budget.name,
            description=budget.description,
            amount=float(budget.amount),
            period=budget.period,
            start_date=budget.start_date,
            end_date=budget.end_date,
            category_ids=category_ids_for_storage(budget.categories),
            alert_percentage=budget.alert_percentage,
            alert_enabled=budget.alert_enabled,
            is_active=budget.is_active,
        )


class BudgetWithSpendingModel(BudgetResponseModel):
    actual_spent: float
    remaining: float
    percentage_used: float
    is_over_budget: bool
    days_remaining: int

    @classmethod
    def from_spending(cls, item: BudgetWithSpending) -> "BudgetWithSpendingModel":
        base = BudgetResponseModel.from_dataclass(item.budget).model_dump()
        return cls(
            **base,
            actual_spent=float(item.actual_spent),
            remaining=float(item.remaining),
            percentage_used=item.percentage_used,
            is_over_budget=item.is_over_budget,
            days_remaining=item.days_remaining,
        )


class BudgetAlertModel(BaseModel):
    id: str
    name: str
    type: Literal["approaching", "warning", "exceeded"]
    priority: Literal["low", "medium", "high"]
    message: str
    amount: float
    spent: float
    remaining: float
    percentage: float
    days_remaining: int

    @classmethod
    def from_dataclass(cls, alert: BudgetAlert) -> "BudgetAlertModel":
        return cls(
            id=alert.id,
            name=alert.name,
            type=alert.type,
            priority=alert.priority,
            message=alert.message,
            amount=float(alert.amount),
            spent=float(alert.spent),
            remaining=float(alert.remaining),
            percentage=alert.percentage,
            days_remaining=alert.days_remaining,
        )


class HealthFactorModel(BaseModel):
    name: str
    points: int
    max_points: int


class HealthRecommendationModel(BaseModel):
    title: str
    description: str
    action: str


class HealthScoreModel(BaseModel):
    score: int
    max_score: int
    grade: str
    factors: list[HealthFactorModel]
    recommendations: list[HealthRecommendationModel]

    @classmethod
    def from_dataclass(cls, health: HealthScore) -> "HealthScoreModel":
        return cls(
            score=health.score,
            max_score=health.max_score,
            grade=health.grade,
            factors=[
                HealthFactorModel(name=factor.name, points=factor.points, max_points=factor.max_points)
                for factor in health.factors
            ],
            recommendations=[
                HealthRecommendationModel(title=item.title, description=item.description, action=item.action)
                for item in health.recommendations
            ],
        )


class TrendPointModel(BaseModel):
    period: str
    start_date: date
    end_date: date
    budgeted: float
    spent: float
    saved: float
    savings_rate: float

    @classmethod
    def from_dataclass(cls, point: TrendPoint) -> "TrendPointModel":
        return cls(
            period=point.period,
            start_date=point.start_date,
            end_date=point.end_date,
            budgeted=float(point.budgeted),
            spent=float(point.spent),
            saved=float(point.saved),
            savings_rate=point.savings_rate,
        )


class InsightModel(BaseModel):
    type: Literal["positive", "warning", "negative", "info"]
    title: str
    message: str
    icon: str

    @classmethod
    def from_dataclass(cls, insight: Insight) -> "InsightModel":
        return cls(type=insight.type, title=insight.title, message=insight.message, icon=insight.icon)


class BudgetPerformanceModel(BaseModel):
    total_budgets: int
    total_budget_amount: float
    total_spent: float
    budgets_over_limit: int
    budgets_on_track: int
    average_usage_percentage: float

    @classmethod
    def from_dataclass(cls, performance: BudgetPerformance) -> "BudgetPerformanceModel":
        return cls(
            total_budgets=performance.total_budgets,
            total_budget_amount=float(performance.total_budget_amount),
            total_spent=float(performance.total_spent),
            budgets_over_limit=performance.budgets_over_limit,
            budgets_on_track=performance.budgets_on_track,
            average_usage_percentage=performance.average_usage_percentage,
        )


class BudgetStatusModel(BaseModel):
    on_track: list[BudgetWithSpendingModel]
    at_risk: list[BudgetWithSpendingModel]
    over_budget: list[BudgetWithSpendingModel]

    @classmethod
    def from_dataclass(cls, status: BudgetStatusBreakdown) -> "BudgetStatusModel":
        return cls(
            on_track=[BudgetWithSpendingModel.from_spending(item) for item in status.on_track],
            at_risk=[BudgetWithSpendingModel.from_spending(item) for item in status.at_risk],
            over_budget=[BudgetWithSpendingModel.from_spending(item) for item in status.over_budget],
        )


class BudgetHistoryEntryModel(BaseModel):
    budget: BudgetResponseModel
    final_spent: float
    success_rate: float

    @classmethod
    def from_dataclass(cls, entry: BudgetHistoryEntry) -> "BudgetHistoryEntryModel":
        return cls(
            budget=BudgetResponseModel.from_dataclass(entry.budget),
            final_spent=float(entry.final_spent),
            success_rate=entry.success_rate,
        )


class UpcomingEventModel(BaseModel):
    type: str
    title: str
    date: dt.date
    priority: Literal["low", "medium", "high"]
    description: str
    budget_id: Optional[str] = None

    @classmethod
    def from_dataclass(cls, event: UpcomingEvent) -> "UpcomingEventModel":
        return cls(
            type=event.type,
            title=event.title,
            date=event.date,
            priority=event.priority,
            description=event.description,
            budget_id=event.budget_id,
        )


class DashboardModel(BaseModel):
    savings_rate: float
    current_budgets: list[BudgetWithSpendingModel]
    alerts: list[BudgetAlertModel]
    health_score: HealthScoreModel
    insights: list[InsightModel]
