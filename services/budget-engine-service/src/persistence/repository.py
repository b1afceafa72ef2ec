"""SQL-backed implementation of the budget ledger."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable, List, Optional, TypeVar
from uuid import uuid4

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..budget_model import (
    Account,
    Budget,
    BudgetDraft,
    BudgetTemplate,
    Category,
    SavedTemplate,
    Transaction,
    category_ids_for_storage,
    category_scope_from_ids,
)
from ..errors import CollaboratorFailure
from .models import AccountRecord, BudgetRecord, BudgetTemplateRecord, CategoryRecord, TransactionRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


def budget_from_record(record: BudgetRecord) -> Budget:
    return Budget(
        id=record.id,
        user_id=record.user_id,
        name=record.name,
        description=record.description,
        amount=record.amount,
        period=record.period,  # type: ignore[arg-type]
        start_date=record.start_date,
        end_date=record.end_date,
        categories=category_scope_from_ids(record.category_ids),
        alert_percentage=record.alert_percentage,
        alert_enabled=record.alert_enabled,
        is_active=record.is_active,
        created_at=record.created_at,
    )


def template_from_record(record: BudgetTemplateRecord) -> SavedTemplate:
    return SavedTemplate(
        id=record.id,
        user_id=record.user_id,
        settings=BudgetTemplate(
            name=record.name,
            description=record.description,
            amount=record.amount,
            period=record.period,  # type: ignore[arg-type]
            categories=category_scope_from_ids(record.category_ids),
            alert_percentage=record.alert_percentage,
            alert_enabled=record.alert_enabled,
        ),
        is_global=record.is_global,
        is_active=record.is_active,
        usage_count=record.usage_count,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _apply_template_settings(record: BudgetTemplateRecord, settings: BudgetTemplate) -> None:
    record.name = settings.name
    record.description = settings.description
    record.amount = settings.amount
    record.period = settings.period
    record.category_ids = category_ids_for_storage(settings.categories)
    record.alert_percentage = settings.alert_percentage
    record.alert_enabled = settings.alert_enabled


def transaction_from_record(record: TransactionRecord) -> Transaction:
    return Transaction(
        id=record.id,
        amount=record.amount,
        type=record.type,  # type: ignore[arg-type]
        date=record.occurred_on,
        category_id=record.category_id,
        account_id=record.account_id,
    )


class SqlBudgetLedger:
    """
    Thin repository that encapsulates ledger reads and budget writes.

    Each call opens its own short-lived session inside a worker thread, so
    concurrent fan-out from the engine never shares a Session.
    """

    name = "sql"

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    async def list_active_budgets(self, user_id: str) -> List[Budget]:
        def _query(session: Session) -> List[Budget]:
            statement = (
                select(BudgetRecord)
                .where(BudgetRecord.user_id == user_id, BudgetRecord.is_active.is_(True))
                .order_by(BudgetRecord.created_at.desc())
            )
            return [budget_from_record(record) for record in session.scalars(statement)]

        return await self._run("list_active_budgets", _query)

    async def list_budgets_in_window(self, user_id: str, start: date, end: date) -> List[Budget]:
        def _query(session: Session) -> List[Budget]:
            statement = (
                select(BudgetRecord)
                .where(
                    BudgetRecord.user_id == user_id,
                    BudgetRecord.is_active.is_(True),
                    BudgetRecord.start_date >= start,
                    BudgetRecord.end_date <= end,
                )
                .order_by(BudgetRecord.start_date, BudgetRecord.name)
            )
            return [budget_from_record(record) for record in session.scalars(statement)]

        return await self._run("list_budgets_in_window", _query)

    async def list_expense_transactions(
        self,
        user_id: str,
        category_ids: Optional[List[str]],
        start: date,
        end: date,
    ) -> List[Transaction]:
        def _query(session: Session) -> List[Transaction]:
            statement = select(TransactionRecord).where(
                TransactionRecord.user_id == user_id,
                TransactionRecord.type == "expense",
                TransactionRecord.occurred_on >= start,
                TransactionRecord.occurred_on <= end,
            )
            if category_ids:
                statement = statement.where(TransactionRecord.category_id.in_(category_ids))
            return [transaction_from_record(record) for record in session.scalars(statement)]

        return await self._run("list_expense_transactions", _query)

    async def list_transactions(self, user_id: str, start: Optional[date], end: date) -> List[Transaction]:
        def _query(session: Session) -> List[Transaction]:
            statement = (
                select(TransactionRecord)
                .where(TransactionRecord.user_id == user_id, TransactionRecord.occurred_on <= end)
                .order_by(TransactionRecord.occurred_on)
            )
            if start is not None:
                statement = statement.where(TransactionRecord.occurred_on >= start)
            return [transaction_from_record(record) for record in session.scalars(statement)]

        return await self._run("list_transactions", _query)

    async def list_accounts(self, user_id: str) -> List[Account]:
        def _query(session: Session) -> List[Account]:
            statement = select(AccountRecord).where(AccountRecord.user_id == user_id)
            return [
                Account(
                    id=record.id,
                    type=record.type,
                    include_in_total=record.include_in_total,
                    is_active=record.is_active,
                )
                for record in session.scalars(statement)
            ]

        return await self._run("list_accounts", _query)

    async def list_categories(self, user_id: str) -> List[Category]:
        def _query(session: Session) -> List[Category]:
            statement = select(CategoryRecord).where(CategoryRecord.user_id == user_id)
            return [Category(id=record.id, name=record.name) for record in session.scalars(statement)]

        return await self._run("list_categories", _query)

    async def get_budget(self, user_id: str, budget_id: str) -> Optional[Budget]:
        def _query(session: Session) -> Optional[Budget]:
            record = session.get(BudgetRecord, budget_id)
            if record is None or record.user_id != user_id:
                return None
            return budget_from_record(record)

        return await self._run("get_budget", _query)

    async def list_budget_history(self, user_id: str, limit: int) -> List[Budget]:
        def _query(session: Session) -> List[Budget]:
            statement = (
                select(BudgetRecord)
                .where(BudgetRecord.user_id == user_id)
                .order_by(BudgetRecord.created_at.desc())
                .limit(limit)
            )
            return [budget_from_record(record) for record in session.scalars(statement)]

        return await self._run("list_budget_history", _query)

    async def create_budget(self, draft: BudgetDraft) -> Budget:
        def _insert(session: Session) -> Budget:
            record = BudgetRecord(
                id=str(uuid4()),
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
            session.add(record)
            session.commit()
            session.refresh(record)
            return budget_from_record(record)

        return await self._run("create_budget", _insert)

    async def deactivate_budget(self, user_id: str, budget_id: str) -> bool:
        def _update(session: Session) -> bool:
            result = session.execute(
                update(BudgetRecord)
                .where(BudgetRecord.id == budget_id, BudgetRecord.user_id == user_id)
                .values(is_active=False)
            )
            session.commit()
            return result.rowcount > 0

        return await self._run("deactivate_budget", _update)

    async def list_templates(self, user_id: str) -> List[SavedTemplate]:
        def _query(session: Session) -> List[SavedTemplate]:
            statement = select(BudgetTemplateRecord).where(
                BudgetTemplateRecord.is_active.is_(True),
                or_(BudgetTemplateRecord.user_id == user_id, BudgetTemplateRecord.is_global.is_(True)),
            )
            return [template_from_record(record) for record in session.scalars(statement)]

        return await self._run("list_templates", _query)

    async def get_template(self, user_id: str, template_id: str) -> Optional[SavedTemplate]:
        def _query(session: Session) -> Optional[SavedTemplate]:
            record = session.get(BudgetTemplateRecord, template_id)
            if record is None:
                return None
            template = template_from_record(record)
            return template if template.is_visible_to(user_id) else None

        return await self._run("get_template", _query)

    async def create_template(self, user_id: str, settings: BudgetTemplate) -> SavedTemplate:
        def _insert(session: Session) -> SavedTemplate:
            record = BudgetTemplateRecord(id=str(uuid4()), user_id=user_id, is_global=False, usage_count=0)
            _apply_template_settings(record, settings)
            session.add(record)
            session.commit()
            session.refresh(record)
            return template_from_record(record)

        return await self._run("create_template", _insert)

    async def update_template(
        self,
        user_id: str,
        template_id: str,
        settings: BudgetTemplate,
    ) -> Optional[SavedTemplate]:
        def _update(session: Session) -> Optional[SavedTemplate]:
            record = session.get(BudgetTemplateRecord, template_id)
            if record is None or record.user_id != user_id or not record.is_active:
                return None
            _apply_template_settings(record, settings)
            session.commit()
            session.refresh(record)
            return template_from_record(record)

        return await self._run("update_template", _update)

    async def deactivate_template(self, user_id: str, template_id: str) -> bool:
        def _update(session: Session) -> bool:
            result = session.execute(
                update(BudgetTemplateRecord)
                .where(BudgetTemplateRecord.id == template_id, BudgetTemplateRecord.user_id == user_id)
                .values(is_active=False)
            )
            session.commit()
            return result.rowcount > 0

        return await self._run("deactivate_template", _update)

    async def increment_template_usage(self, user_id: str, template_id: str) -> None:
        def _update(session: Session) -> None:
            # Single UPDATE so concurrent uses never lose a count
            session.execute(
                update(BudgetTemplateRecord)
                .where(BudgetTemplateRecord.id == template_id)
                .values(usage_count=BudgetTemplateRecord.usage_count + 1)
            )
            session.commit()

        await self._run("increment_template_usage", _update)

    async def _run(self, operation: str, work: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._in_session, operation, work)

    def _in_session(self, operation: str, work: Callable[[Session], T]) -> T:
        try:
            with self._session_factory() as session:
                return work(session)
        except SQLAlchemyError as exc:
            logger.error({"event": "ledger_query_failed", "ledger": self.name, "operation": operation, "error": str(exc)})
            raise CollaboratorFailure(f"SQL ledger failed during {operation}") from exc
