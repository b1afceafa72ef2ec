from datetime import date
from decimal import Decimal

import pytest
from ledger_fakes import InMemoryLedger, expense, make_budget

from src.errors import CollaboratorFailure, InvalidRequest
from src.trend_analyzer import TrendSeries, build_trend_point, compute_trends

TODAY = date(2024, 3, 15)


def _seed(ledger: InMemoryLedger) -> None:
    ledger.add_budget(make_budget("jan", start=date(2024, 1, 1), end=date(2024, 1, 31), amount="500"))
    ledger.add_budget(make_budget("feb", start=date(2024, 2, 1), end=date(2024, 2, 29), amount="400"))
    ledger.add_budget(make_budget("mar", start=date(2024, 3, 1), end=date(2024, 3, 31), amount="600"))
    # Spans two months, so it belongs to neither monthly window.
    ledger.add_budget(make_budget("straddle", start=date(2024, 2, 15), end=date(2024, 3, 14), amount="999"))
    ledger.add_transactions(
        "user-1",
        [
            expense("450", date(2024, 1, 10)),
            expense("500", date(2024, 2, 10)),
            expense("150", date(2024, 3, 2)),
        ],
    )


def test_build_trend_point_handles_zero_budget() -> None:
    point = build_trend_point(date(2024, 1, 1), date(2024, 1, 31), Decimal("0"), Decimal("0"))

    assert point.period == "Jan 2024"
    assert point.savings_rate == 0.0
    assert point.saved == Decimal("0")


@pytest.mark.anyio
async def test_trends_return_one_point_per_month_oldest_first(ledger: InMemoryLedger) -> None:
    _seed(ledger)

    points = await compute_trends("user-1", ledger, today=TODAY, month_count=4)

    assert [point.period for point in points] == ["Dec 2023", "Jan 2024", "Feb 2024", "Mar 2024"]
    assert points[0].budgeted == Decimal("0")
    assert points[1].budgeted == Decimal("500")
    assert points[1].spent == Decimal("450")
    assert points[1].savings_rate == pytest.approx(10.0)
    assert points[2].saved == Decimal("-100")
    assert points[3].start_date == date(2024, 3, 1)
    assert points[3].end_date == date(2024, 3, 31)
    assert points[3].budgeted == Decimal("600")


@pytest.mark.anyio
async def test_trend_series_is_restartable_and_sees_new_data(ledger: InMemoryLedger) -> None:
    _seed(ledger)
    series = TrendSeries("user-1", ledger, today=TODAY, month_count=2)

    first = [point async for point in series]
    ledger.add_transactions("user-1", [expense("50", date(2024, 3, 20))])
    second = [point async for point in series]

    assert len(series) == 2
    assert first[-1].spent == Decimal("150")
    assert second[-1].spent == Decimal("200")


def test_trend_series_requires_at_least_one_month(ledger: InMemoryLedger) -> None:
    with pytest.raises(InvalidRequest):
        TrendSeries("user-1", ledger, today=TODAY, month_count=0)


@pytest.mark.anyio
async def test_trends_surface_ledger_failures(ledger: InMemoryLedger) -> None:
    _seed(ledger)
    ledger.failures["list_budgets_in_window"] = CollaboratorFailure("down")

    with pytest.raises(CollaboratorFailure):
        await compute_trends("user-1", ledger, today=TODAY, month_count=3)


@pytest.mark.anyio
async def test_trend_months_share_one_concurrency_limit() -> None:
    ledger = InMemoryLedger(delay=0.01)
    for month in (1, 2, 3):
        last_day = 29 if month == 2 else 31
        for index in range(4):
            ledger.add_budget(
                make_budget(
                    f"m{month}-{index}",
                    name=f"B{month}-{index}",
                    start=date(2024, month, 1),
                    end=date(2024, month, last_day),
                )
            )

    points = await compute_trends("user-1", ledger, today=TODAY, month_count=3, max_concurrency=2)

    assert [point.budgeted for point in points] == [Decimal("4000")] * 3
    assert ledger.calls["list_expense_transactions"] == 12
    assert ledger.max_in_flight <= 2
