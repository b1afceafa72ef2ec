"""Persistence primitives for the SQL-backed ledger."""

from .database import (
    DB_URL_ENV_VAR,
    DEFAULT_DB_FILENAME,
    DEFAULT_DB_PATH,
    build_engine,
    build_session_factory,
    get_database_url,
    get_engine,
    init_db,
)
from .models import AccountRecord, Base, BudgetRecord, BudgetTemplateRecord, CategoryRecord, TransactionRecord
from .repository import SqlBudgetLedger

__all__ = [
    "AccountRecord",
    "Base",
    "BudgetRecord",
    "BudgetTemplateRecord",
    "CategoryRecord",
    "DB_URL_ENV_VAR",
    "DEFAULT_DB_FILENAME",
    "DEFAULT_DB_PATH",
    "SqlBudgetLedger",
    "TransactionRecord",
    "build_engine",
    "build_session_factory",
    "get_database_url",
    "get_engine",
    "init_db",
]
