"""
Saved budget template library: templates a user keeps for reuse plus shared
global templates.

The ledger stores the rows; ordering, search, and the popular / recent
shortlists are computed here so every ledger backend returns the same order.
Global templates can be read, duplicated, and used by any user; edits and
deletes only ever touch the caller's own templates.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Iterable, List, Optional

from shared.observability.privacy import hash_payload

from .budget_model import (
    Budget,
    BudgetDraft,
    BudgetOverrides,
    BudgetTemplate,
    SavedTemplate,
    validate_budget,
    validate_template,
)
from .budget_templates import COPY_SUFFIX, draft_from_template, template_from_budget
from .errors import NotFound
from .ledger import BudgetLedger
from .periods import add_one_month

logger = logging.getLogger(__name__)

SHORTLIST_SIZE = 5


def _stamp(value: Optional[datetime]) -> float:
    return value.timestamp() if value is not None else 0.0


def sort_templates(templates: Iterable[SavedTemplate]) -> List[SavedTemplate]:
    """Global templates first, then most used, then newest."""
    return sorted(
        templates,
        key=lambda template: (not template.is_global, -template.usage_count, -_stamp(template.created_at)),
    )


def search_templates(templates: Iterable[SavedTemplate], query: str) -> List[SavedTemplate]:
    """Case-insensitive substring match on name or description; a blank query matches everything."""
    needle = query.strip().lower()
    if not needle:
        return list(templates)
    return [
        template
        for template in templates
        if needle in template.name.lower() or needle in (template.settings.description or "").lower()
    ]


def draft_with_overrides(
    user_id: str,
    template: BudgetTemplate,
    overrides: BudgetOverrides,
    *,
    today: date,
) -> BudgetDraft:
    """
    Build a budget draft from saved settings with per-budget overrides applied.

    Without a start date the budget starts today; without an end date it runs
    one calendar month from its start.
    """
    start_date = overrides.start_date or today
    draft = draft_from_template(
        user_id,
        template,
        name=overrides.name or template.name,
        start_date=start_date,
        end_date=overrides.end_date or add_one_month(start_date),
    )
    changes = {
        "amount": overrides.amount,
        "description": overrides.description,
        "categories": overrides.categories,
        "alert_percentage": overrides.alert_percentage,
        "alert_enabled": overrides.alert_enabled,
    }
    return replace(draft, **{key: value for key, value in changes.items() if value is not None})


class TemplateLibrary:
    """Reads and writes a user's saved templates and creates budgets from them."""

    def __init__(self, ledger: BudgetLedger) -> None:
        self._ledger = ledger

    async def list_templates(self, user_id: str) -> List[SavedTemplate]:
        return sort_templates(await self._ledger.list_templates(user_id))

    async def search(self, user_id: str, query: str) -> List[SavedTemplate]:
        return search_templates(await self.list_templates(user_id), query)

    async def popular(self, user_id: str, limit: int = SHORTLIST_SIZE) -> List[SavedTemplate]:
        templates = await self._ledger.list_templates(user_id)
        ranked = sorted(templates, key=lambda template: (-template.usage_count, -_stamp(template.created_at)))
        return ranked[:limit]

    async def recent(self, user_id: str, limit: int = SHORTLIST_SIZE) -> List[SavedTemplate]:
        """The user's own templates, most recently changed first; global templates are left out."""
        templates = await self._ledger.list_templates(user_id)
        own = [template for template in templates if template.user_id == user_id and not template.is_global]
        own.sort(key=lambda template: _stamp(template.updated_at or template.created_at), reverse=True)
        return own[:limit]

    async def get(self, user_id: str, template_id: str) -> SavedTemplate:
        template = await self._ledger.get_template(user_id, template_id)
        if template is None:
            raise NotFound(f"Template '{template_id}' not found")
        return template

    async def create(self, user_id: str, settings: BudgetTemplate) -> SavedTemplate:
        validate_template(settings)
        created = await self._ledger.create_template(user_id, settings)
        logger.info({"event": "template_created", "user": hash_payload(user_id), "template_id": created.id})
        return created

    async def update(self, user_id: str, template_id: str, settings: BudgetTemplate) -> SavedTemplate:
        validate_template(settings)
        updated = await self._ledger.update_template(user_id, template_id, settings)
        if updated is None:
            raise NotFound(f"Template '{template_id}' not found or not owned by user")
        logger.info({"event": "template_updated", "user": hash_payload(user_id), "template_id": template_id})
        return updated

    async def delete(self, user_id: str, template_id: str) -> None:
        """Soft-delete: the row stays stored with `is_active` cleared."""
        if not await self._ledger.deactivate_template(user_id, template_id):
            raise NotFound(f"Template '{template_id}' not found or not owned by user")
        logger.info({"event": "template_deactivated", "user": hash_payload(user_id), "template_id": template_id})

    async def save_as_template(self, user_id: str, settings: BudgetTemplate) -> SavedTemplate:
        """Overwrite the user's own template with the same name, or store a new one."""
        validate_template(settings)
        templates = await self._ledger.list_templates(user_id)
        existing = next(
            (
                template
                for template in templates
                if template.user_id == user_id and not template.is_global and template.name == settings.name
            ),
            None,
        )
        if existing is None:
            return await self.create(user_id, settings)
        return await self.update(user_id, existing.id, settings)

    async def save_budget_as_template(
        self,
        user_id: str,
        budget_id: str,
        name: Optional[str] = None,
    ) -> SavedTemplate:
        budget = await self._ledger.get_budget(user_id, budget_id)
        if budget is None:
            raise NotFound(f"Budget '{budget_id}' not found")
        settings = template_from_budget(budget)
        if name:
            settings = replace(settings, name=name)
        return await self.save_as_template(user_id, settings)

    async def duplicate_template(
        self,
        user_id: str,
        template_id: str,
        new_name: Optional[str] = None,
    ) -> SavedTemplate:
        """Copy any visible template, global ones included, into a new user-owned template."""
        source = await self.get(user_id, template_id)
        return await self.create(user_id, replace(source.settings, name=new_name or f"{source.name}{COPY_SUFFIX}"))

    async def create_budget_from_template(
        self,
        user_id: str,
        template_id: str,
        *,
        today: date,
        overrides: Optional[BudgetOverrides] = None,
    ) -> Budget:
        """
        Create a budget from a saved template and count the use.

        Not transactional: if bumping the usage count fails, the budget has already
        been stored and the failure still propagates.

        Raises:
            NotFound: when the template is missing, inactive, or not visible to the user.
            InvalidBudget: before any write, when the overrides make the budget invalid.
        """
        source = await self.get(user_id, template_id)
        draft = draft_with_overrides(user_id, source.settings, overrides or BudgetOverrides(), today=today)
        validate_budget(draft)

        created = await self._ledger.create_budget(draft)
        await self._ledger.increment_template_usage(user_id, template_id)
        logger.info(
            {
                "event": "budget_created_from_template",
                "user": hash_payload(user_id),
                "template_id": template_id,
                "budget_id": created.id,
            }
        )
        return created
