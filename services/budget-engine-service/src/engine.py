"""
Caller-facing facade that wires the ledger into the spend, alert, health, trend,
template, template-library, and insight components.

Every method takes `today` explicitly; the HTTP layer resolves it once per
request so all figures in a response agree on the same date.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Union

from shared.engine_settings import EngineSettings
from shared.observability.privacy import hash_payload

from .alert_generator import generate_alerts
from .budget_model import (
    Budget,
    BudgetAlert,
    BudgetHistoryEntry,
    BudgetOverrides,
    BudgetPerformance,
    BudgetStatusBreakdown,
    BudgetTemplate,
    BudgetWithSpending,
    HealthScore,
    Insight,
    SavedTemplate,
    TrendPoint,
    UpcomingEvent,
)
from .budget_templates import BudgetTemplateEngine
from .errors import NotFound
from .financials import FinancialSnapshot, build_snapshot
from .health_score import aggregate_from_snapshot, compute_health_score
from .insights import generate_insights
from .ledger import BudgetLedger
from .periods import add_one_month, month_window
from .spend_calculator import compute_spending_many
from .template_library import TemplateLibrary
from .trend_analyzer import compute_trends

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
AT_RISK_THRESHOLD = 80.0


@dataclass(frozen=True)
class DashboardReport:
    snapshot: FinancialSnapshot
    alerts: List[BudgetAlert]
    health_score: HealthScore
    insights: List[Insight]


class BudgetEngine:
    """Read-mostly budget computations over a single ledger backend."""

    def __init__(
        self,
        ledger: BudgetLedger,
        *,
        max_concurrency: int = 8,
        observation_days: int = 30,
        trend_months: int = 6,
    ) -> None:
        self._ledger = ledger
        self._max_concurrency = max_concurrency
        self._observation_days = observation_days
        self._trend_months = trend_months
        self._templates = BudgetTemplateEngine(ledger, max_concurrency=max_concurrency)
        self._library = TemplateLibrary(ledger)

    @classmethod
    def from_settings(cls, ledger: BudgetLedger, settings: EngineSettings) -> "BudgetEngine":
        return cls(
            ledger,
            max_concurrency=settings.max_concurrency,
            observation_days=settings.observation_days,
            trend_months=settings.trend_months,
        )

    @property
    def ledger(self) -> BudgetLedger:
        return self._ledger

    async def get_current_budgets(self, user_id: str, *, today: date) -> List[BudgetWithSpending]:
        """Active budgets whose window contains today, with spend figures."""
        budgets = await self._ledger.list_active_budgets(user_id)
        current = [budget for budget in budgets if budget.is_current(today)]
        return await compute_spending_many(current, self._ledger, today=today, max_concurrency=self._max_concurrency)

    async def get_budget_alerts(self, user_id: str, *, today: date) -> List[BudgetAlert]:
        return generate_alerts(await self.get_current_budgets(user_id, today=today))

    async def get_snapshot(self, user_id: str, *, today: date) -> FinancialSnapshot:
        """
        Read budgets, transactions, categories, and accounts once for a consistent view.

        Transactions are read without a lower bound: health and savings figures
        are all-time. The four ledger reads are independent and run concurrently.
        """
        window_start = today - timedelta(days=self._observation_days - 1)
        current_budgets, transactions, categories, accounts = await asyncio.gather(
            self.get_current_budgets(user_id, today=today),
            self._ledger.list_transactions(user_id, None, today),
            self._ledger.list_categories(user_id),
            self._ledger.list_accounts(user_id),
        )
        return build_snapshot(
            as_of=today,
            window_start=window_start,
            current_budgets=current_budgets,
            transactions=transactions,
            categories=categories,
            accounts=accounts,
        )

    async def get_health_score(self, user_id: str, *, today: date) -> HealthScore:
        snapshot = await self.get_snapshot(user_id, today=today)
        return compute_health_score(aggregate_from_snapshot(snapshot))

    async def get_insights(self, user_id: str, *, today: date) -> List[Insight]:
        snapshot = await self.get_snapshot(user_id, today=today)
        return generate_insights(snapshot)

    async def get_dashboard(self, user_id: str, *, today: date) -> DashboardReport:
        snapshot = await self.get_snapshot(user_id, today=today)
        report = DashboardReport(
            snapshot=snapshot,
            alerts=generate_alerts(snapshot.current_budgets),
            health_score=compute_health_score(aggregate_from_snapshot(snapshot)),
            insights=generate_insights(snapshot),
        )
        logger.info(
            {
                "event": "dashboard_computed",
                "user": hash_payload(user_id),
                "budget_count": len(snapshot.current_budgets),
                "alert_count": len(report.alerts),
                "health_score": report.health_score.score,
            }
        )
        return report

    async def get_budget_trends(
        self,
        user_id: str,
        months: Optional[int] = None,
        *,
        today: date,
    ) -> List[TrendPoint]:
        return await compute_trends(
            user_id,
            self._ledger,
            today=today,
            month_count=months if months is not None else self._trend_months,
            max_concurrency=self._max_concurrency,
        )

    async def get_budget_performance(
        self,
        user_id: str,
        *,
        today: date,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> BudgetPerformance:
        """Totals for budgets inside [start, end], defaulting to today's calendar month."""
        if start is None or end is None:
            start, end = month_window(today.year, today.month)

        budgets = await self._ledger.list_budgets_in_window(user_id, start, end)
        spending = await compute_spending_many(budgets, self._ledger, today=today, max_concurrency=self._max_concurrency)
        if not spending:
            return BudgetPerformance(0, ZERO, ZERO, 0, 0, 0.0)

        over_limit = sum(1 for item in spending if item.actual_spent > item.amount)
        return BudgetPerformance(
            total_budgets=len(spending),
            total_budget_amount=sum((item.amount for item in spending), ZERO),
            total_spent=sum((item.actual_spent for item in spending), ZERO),
            budgets_over_limit=over_limit,
            budgets_on_track=len(spending) - over_limit,
            average_usage_percentage=sum(item.percentage_used for item in spending) / len(spending),
        )

    async def get_budget_status(self, user_id: str, *, today: date) -> BudgetStatusBreakdown:
        current = await self.get_current_budgets(user_id, today=today)
        return BudgetStatusBreakdown(
            on_track=[item for item in current if item.percentage_used <= AT_RISK_THRESHOLD],
            at_risk=[item for item in current if AT_RISK_THRESHOLD < item.percentage_used <= 100],
            over_budget=[item for item in current if item.percentage_used > 100],
        )

    async def get_budget_history(self, user_id: str, *, today: date, limit: int = 50) -> List[BudgetHistoryEntry]:
        budgets = await self._ledger.list_budget_history(user_id, limit)
        spending = await compute_spending_many(budgets, self._ledger, today=today, max_concurrency=self._max_concurrency)
        entries = []
        for item in spending:
            success_rate = (
                min(100.0, float(item.remaining * 100 / item.amount)) if item.amount > 0 else 0.0
            )
            entries.append(BudgetHistoryEntry(budget=item.budget, final_spent=item.actual_spent, success_rate=success_rate))
        return entries

    async def get_upcoming_events(self, user_id: str, *, today: date) -> List[UpcomingEvent]:
        """Current budgets that end within the next month, soonest first."""
        horizon = add_one_month(today)
        current = await self.get_current_budgets(user_id, today=today)
        events = [
            UpcomingEvent(
                type="budget_ending",
                title=f'Budget "{item.name}" ending soon',
                date=item.budget.end_date,
                priority="medium",
                description=f"Budget ends in {item.days_remaining} days",
                budget_id=item.id,
            )
            for item in current
            if item.budget.end_date <= horizon
        ]
        return sorted(events, key=lambda event: event.date)

    async def duplicate_budget(self, user_id: str, budget_id: str, *, today: date) -> Budget:
        return await self._templates.duplicate(user_id, budget_id, today=today)

    async def create_recurring_budget(
        self,
        user_id: str,
        template: BudgetTemplate,
        months: int,
        *,
        today: date,
    ) -> List[Budget]:
        return await self._templates.create_recurring(user_id, template, months, today=today)

    async def create_budget_from_previous_month(
        self,
        user_id: str,
        target_month: Optional[Union[date, str]] = None,
        *,
        today: date,
    ) -> List[Budget]:
        return await self._templates.create_from_previous_month(user_id, target_month, today=today)

    async def delete_budget(self, user_id: str, budget_id: str) -> None:
        """Soft-delete: the budget stays stored with `is_active` cleared."""
        if not await self._ledger.deactivate_budget(user_id, budget_id):
            raise NotFound(f"Budget '{budget_id}' not found")
        logger.info({"event": "budget_deactivated", "user": hash_payload(user_id), "budget_id": budget_id})

    async def list_templates(self, user_id: str, query: Optional[str] = None) -> List[SavedTemplate]:
        """Visible saved templates, global first; `query` narrows by name or description."""
        if query:
            return await self._library.search(user_id, query)
        return await self._library.list_templates(user_id)

    async def get_popular_templates(self, user_id: str) -> List[SavedTemplate]:
        return await self._library.popular(user_id)

    async def get_recent_templates(self, user_id: str) -> List[SavedTemplate]:
        return await self._library.recent(user_id)

    async def get_template(self, user_id: str, template_id: str) -> SavedTemplate:
        return await self._library.get(user_id, template_id)

    async def save_template(self, user_id: str, settings: BudgetTemplate) -> SavedTemplate:
        return await self._library.save_as_template(user_id, settings)

    async def update_template(self, user_id: str, template_id: str, settings: BudgetTemplate) -> SavedTemplate:
        return await self._library.update(user_id, template_id, settings)

    async def delete_template(self, user_id: str, template_id: str) -> None:
        await self._library.delete(user_id, template_id)

    async def save_budget_as_template(self, user_id: str, budget_id: str, name: Optional[str] = None) -> SavedTemplate:
        return await self._library.save_budget_as_template(user_id, budget_id, name)

    async def duplicate_template(self, user_id: str, template_id: str, new_name: Optional[str] = None) -> SavedTemplate:
        return await self._library.duplicate_template(user_id, template_id, new_name)

    async def create_budget_from_template(
        self,
        user_id: str,
        template_id: str,
        overrides: Optional[BudgetOverrides] = None,
        *,
        today: date,
    ) -> Budget:
        return await self._library.create_budget_from_template(user_id, template_id, today=today, overrides=overrides)
