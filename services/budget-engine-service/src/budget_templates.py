from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Sequence, Union

from shared.observability.privacy import hash_payload

from .budget_model import Budget, BudgetDraft, BudgetTemplate, validate_budget
from .errors import InvalidRequest, NotFound
from .fan_out import gather_bounded
from .ledger import BudgetLedger
from .periods import add_one_month, long_month_label, month_window, parse_month, shift_month

logger = logging.getLogger(__name__)

COPY_SUFFIX = " (Copy)"


def template_from_budget(budget: Budget) -> BudgetTemplate:
    """Strip the window and identity from a budget so it can seed new periods."""
    return BudgetTemplate(
        name=budget.name,
        amount=budget.amount,
        period=budget.period,
        categories=budget.categories,
        description=budget.description,
        alert_percentage=budget.alert_percentage,
        alert_enabled=budget.alert_enabled,
    )


def draft_from_template(
    user_id: str,
    template: BudgetTemplate,
    *,
    name: str,
    start_date: date,
    end_date: date,
) -> BudgetDraft:
    return BudgetDraft(
        user_id=user_id,
        name=name,
        amount=template.amount,
        period=template.period,
        start_date=start_date,
        end_date=end_date,
        categories=template.categories,
        description=template.description,
        alert_percentage=template.alert_percentage,
        alert_enabled=template.alert_enabled,
    )


class BudgetTemplateEngine:
    """
    Generates budgets for new periods from a template, a prior month, or an existing budget.

    Multi-budget operations are not transactional: when one creation fails, the
    budgets already written stay in the ledger and the first error is re-raised.
    """

    def __init__(self, ledger: BudgetLedger, *, max_concurrency: int = 4) -> None:
        self._ledger = ledger
        self._max_concurrency = max_concurrency

    async def duplicate(self, user_id: str, budget_id: str, *, today: date) -> Budget:
        original = await self._ledger.get_budget(user_id, budget_id)
        if original is None:
            raise NotFound(f"Budget '{budget_id}' not found")

        draft = draft_from_template(
            user_id,
            template_from_budget(original),
            name=f"{original.name}{COPY_SUFFIX}",
            start_date=today,
            end_date=add_one_month(today),
        )
        validate_budget(draft)
        created = await self._ledger.create_budget(draft)
        logger.info(
            {
                "event": "budget_duplicated",
                "user": hash_payload(user_id),
                "source_budget_id": budget_id,
                "budget_id": created.id,
            }
        )
        return created

    async def create_recurring(
        self,
        user_id: str,
        template: BudgetTemplate,
        months: int,
        *,
        today: date,
    ) -> List[Budget]:
        """
        Create one full-calendar-month budget per month, starting with today's month.

        Each name carries the target month, e.g. "Groceries - March 2024".
        """
        if months < 1:
            raise InvalidRequest(f"months must be at least 1 (received {months})")

        drafts = []
        for offset in range(months):
            first_day = shift_month(today, offset)
            start_date, end_date = month_window(first_day.year, first_day.month)
            drafts.append(
                draft_from_template(
                    user_id,
                    template,
                    name=f"{template.name} - {long_month_label(first_day)}",
                    start_date=start_date,
                    end_date=end_date,
                )
            )
        return await self._create_all(user_id, drafts, action="recurring")

    async def create_from_previous_month(
        self,
        user_id: str,
        target_month: Optional[Union[date, str]] = None,
        *,
        today: date,
    ) -> List[Budget]:
        """
        Roll every budget that spanned exactly the month before `target_month` into it.

        Args:
            target_month: date or "YYYY-MM"; defaults to today's month.
        Raises:
            NotFound: when the previous month has no full-month budgets to copy.
        """
        target_first = parse_month(target_month if target_month is not None else today)
        previous_first = shift_month(target_first, -1)
        previous_start, previous_end = month_window(previous_first.year, previous_first.month)
        target_start, target_end = month_window(target_first.year, target_first.month)

        candidates = await self._ledger.list_budgets_in_window(user_id, previous_start, previous_end)
        sources = [
            budget
            for budget in candidates
            if budget.start_date == previous_start and budget.end_date == previous_end
        ]
        if not sources:
            raise NotFound(f"No budgets found for {long_month_label(previous_first)}")

        drafts = [
            draft_from_template(
                user_id,
                template_from_budget(source),
                name=source.name,
                start_date=target_start,
                end_date=target_end,
            )
            for source in sources
        ]
        return await self._create_all(user_id, drafts, action="previous_month")

    async def _create_all(self, user_id: str, drafts: Sequence[BudgetDraft], *, action: str) -> List[Budget]:
        for draft in drafts:
            validate_budget(draft)

        results = await gather_bounded(
            drafts,
            self._ledger.create_budget,
            max_concurrency=self._max_concurrency,
            return_exceptions=True,
        )
        created = [result for result in results if not isinstance(result, BaseException)]
        failures = [result for result in results if isinstance(result, BaseException)]

        if failures:
            logger.error(
                {
                    "event": "budget_creation_partial",
                    "action": action,
                    "user": hash_payload(user_id),
                    "requested": len(drafts),
                    "created": len(created),
                    "created_ids": [budget.id for budget in created],
                    "error": str(failures[0]),
                }
            )
            raise failures[0]

        logger.info(
            {
                "event": "budgets_created",
                "action": action,
                "user": hash_payload(user_id),
                "created": len(created),
            }
        )
        return created
