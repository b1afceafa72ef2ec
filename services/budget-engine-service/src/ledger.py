"""
Collaborator contract for the stores that hold budgets, transactions, accounts,
categories, and saved budget templates.

The engine never talks to a database or remote service directly; it awaits the
methods below. Implementations must be safe to call concurrently and must raise
`CollaboratorFailure` (with the native error chained) when the underlying store
fails, so that a failed lookup never looks like "no spending".
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Protocol, runtime_checkable

from .budget_model import Account, Budget, BudgetDraft, BudgetTemplate, Category, SavedTemplate, Transaction


@runtime_checkable
class BudgetLedger(Protocol):
    """
    Interface for swappable ledger backends (SQL, HTTP, in-memory fakes).

    Implementations should expose a descriptive `name` attribute.
    """

    name: str

    async def list_active_budgets(self, user_id: str) -> List[Budget]:
        """Return every budget with `is_active` set, newest first."""
        ...

    async def list_budgets_in_window(self, user_id: str, start: date, end: date) -> List[Budget]:
        """Return active budgets whose window lies entirely inside [start, end]."""
        ...

    async def list_expense_transactions(
        self,
        user_id: str,
        category_ids: Optional[List[str]],
        start: date,
        end: date,
    ) -> List[Transaction]:
        """Return expense transactions dated in [start, end]; `None` categories means all."""
        ...

    async def list_transactions(self, user_id: str, start: Optional[date], end: date) -> List[Transaction]:
        """Return transactions of every type dated in [start, end]; `None` start means no lower bound."""
        ...

    async def list_accounts(self, user_id: str) -> List[Account]:
        ...

    async def list_categories(self, user_id: str) -> List[Category]:
        ...

    async def get_budget(self, user_id: str, budget_id: str) -> Optional[Budget]:
        """Return the budget (active or not) or None when it does not exist for this user."""
        ...

    async def list_budget_history(self, user_id: str, limit: int) -> List[Budget]:
        """Return the most recently created budgets, active or not."""
        ...

    async def create_budget(self, draft: BudgetDraft) -> Budget:
        ...

    async def deactivate_budget(self, user_id: str, budget_id: str) -> bool:
        """Soft-delete a budget; returns False when no such budget exists."""
        ...

    async def list_templates(self, user_id: str) -> List[SavedTemplate]:
        """Return active templates owned by the user plus active global templates."""
        ...

    async def get_template(self, user_id: str, template_id: str) -> Optional[SavedTemplate]:
        """Return an active template visible to the user, or None."""
        ...

    async def create_template(self, user_id: str, settings: BudgetTemplate) -> SavedTemplate:
        """Store a new user-owned template with a usage count of zero."""
        ...

    async def update_template(
        self,
        user_id: str,
        template_id: str,
        settings: BudgetTemplate,
    ) -> Optional[SavedTemplate]:
        """Replace the settings of a template the user owns; None when it is not theirs or missing."""
        ...

    async def deactivate_template(self, user_id: str, template_id: str) -> bool:
        """Soft-delete a user-owned template; returns False when no such template exists."""
        ...

    async def increment_template_usage(self, user_id: str, template_id: str) -> None:
        """Atomically add one to the template's usage count."""
        ...
