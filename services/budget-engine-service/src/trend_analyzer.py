"""
Monthly budgeted-versus-spent history.

`TrendSeries` is a lazy async iterable: constructing it does no I/O, and every
`async for` recomputes all months from the ledger, so it can be iterated again
to pick up new transactions. Months are fetched concurrently and yielded oldest
first.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from decimal import Decimal
from typing import AsyncIterator, List, Tuple

from .budget_model import TrendPoint
from .errors import InvalidRequest
from .fan_out import ledger_limiter
from .ledger import BudgetLedger
from .periods import month_label, trailing_months
from .spend_calculator import compute_spending_many

logger = logging.getLogger(__name__)

DEFAULT_MONTH_COUNT = 6
ZERO = Decimal("0")


def build_trend_point(first_day: date, last_day: date, budgeted: Decimal, spent: Decimal) -> TrendPoint:
    saved = budgeted - spent
    savings_rate = float(saved * 100 / budgeted) if budgeted > 0 else 0.0
    return TrendPoint(
        period=month_label(first_day),
        start_date=first_day,
        end_date=last_day,
        budgeted=budgeted,
        spent=spent,
        saved=saved,
        savings_rate=savings_rate,
    )


class TrendSeries:
    """Restartable sequence of TrendPoints for the trailing `month_count` months."""

    def __init__(
        self,
        user_id: str,
        ledger: BudgetLedger,
        *,
        today: date,
        month_count: int = DEFAULT_MONTH_COUNT,
        max_concurrency: int = 4,
    ) -> None:
        if month_count < 1:
            raise InvalidRequest(f"month_count must be at least 1 (received {month_count})")
        self._user_id = user_id
        self._ledger = ledger
        self._today = today
        self._month_count = month_count
        self._max_concurrency = max_concurrency

    def __len__(self) -> int:
        return self._month_count

    async def __aiter__(self) -> AsyncIterator[TrendPoint]:
        # One limiter for every month's ledger calls; month tasks never hold a slot themselves.
        limiter = ledger_limiter(self._max_concurrency)
        windows = trailing_months(self._today, self._month_count)
        points = await asyncio.gather(*(self._compute_month(window, limiter) for window in windows))
        for point in points:
            yield point

    async def _compute_month(self, window: Tuple[date, date], limiter: asyncio.Semaphore) -> TrendPoint:
        first_day, last_day = window
        async with limiter:
            budgets = await self._ledger.list_budgets_in_window(self._user_id, first_day, last_day)
        spending = await compute_spending_many(budgets, self._ledger, today=self._today, limiter=limiter)
        budgeted = sum((item.amount for item in spending), ZERO)
        spent = sum((item.actual_spent for item in spending), ZERO)
        return build_trend_point(first_day, last_day, budgeted, spent)


async def compute_trends(
    user_id: str,
    ledger: BudgetLedger,
    *,
    today: date,
    month_count: int = DEFAULT_MONTH_COUNT,
    max_concurrency: int = 4,
) -> List[TrendPoint]:
    """
    Collect `month_count` TrendPoints, oldest first; the last one covers today's month.
    """
    series = TrendSeries(
        user_id,
        ledger,
        today=today,
        month_count=month_count,
        max_concurrency=max_concurrency,
    )
    points = [point async for point in series]
    logger.debug({"event": "trends_computed", "month_count": len(points)})
    return points
