"""
Shared helpers for configuring the budget engine from the environment.

The HTTP surface, the ledger adapters, and the background concurrency limits all
read the same handful of environment variables. Loading and validating them in
one place keeps fan-out limits, observation windows, and ledger wiring
consistent between the API process and any scripts that embed the engine.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

SUPPORTED_LEDGERS = frozenset({"sql", "http"})
REQUIRED_HTTP_LEDGER_ENV_VARS = ("BUDGET_ENGINE_LEDGER_API_BASE",)

LEDGER_ENV = "BUDGET_ENGINE_LEDGER"
MAX_CONCURRENCY_ENV = "BUDGET_ENGINE_MAX_CONCURRENCY"
TREND_MONTHS_ENV = "BUDGET_ENGINE_TREND_MONTHS"
OBSERVATION_DAYS_ENV = "BUDGET_ENGINE_OBSERVATION_DAYS"
LEDGER_TIMEOUT_ENV = "BUDGET_ENGINE_LEDGER_TIMEOUT_SECONDS"


class EngineSettingsError(RuntimeError):
    """Raised when engine configuration cannot be constructed."""


@dataclass(frozen=True, slots=True)
class HttpLedgerConfig:
    api_base: str
    timeout_seconds: float


@dataclass(frozen=True, slots=True)
class EngineSettings:
    ledger_name: str
    max_concurrency: int
    trend_months: int
    observation_days: int
    http_ledger: Optional[HttpLedgerConfig] = None


def load_engine_settings(
    *,
    default_ledger: str = "sql",
    default_max_concurrency: int = 8,
    default_trend_months: int = 6,
    default_observation_days: int = 30,
    default_timeout: float = 10.0,
) -> EngineSettings:
    """
    Construct EngineSettings from the BUDGET_ENGINE_* environment variables.

    Args:
        default_*: Fallback values when the env var is unset/empty.
    Raises:
        EngineSettingsError: when a value is malformed or out of range, or when
            the HTTP ledger is selected without its API base.
    """

    ledger_name = _normalize_ledger(os.getenv(LEDGER_ENV, default_ledger))
    max_concurrency = _parse_positive_int(os.getenv(MAX_CONCURRENCY_ENV), default_max_concurrency, MAX_CONCURRENCY_ENV)
    trend_months = _parse_positive_int(os.getenv(TREND_MONTHS_ENV), default_trend_months, TREND_MONTHS_ENV)
    observation_days = _parse_positive_int(
        os.getenv(OBSERVATION_DAYS_ENV), default_observation_days, OBSERVATION_DAYS_ENV
    )

    http_ledger: Optional[HttpLedgerConfig] = None
    if ledger_name == "http":
        timeout_seconds = _parse_float(os.getenv(LEDGER_TIMEOUT_ENV), default_timeout, LEDGER_TIMEOUT_ENV)
        http_ledger = _build_http_ledger_config(timeout_seconds)

    return EngineSettings(
        ledger_name=ledger_name,
        max_concurrency=max_concurrency,
        trend_months=trend_months,
        observation_days=observation_days,
        http_ledger=http_ledger,
    )


def _normalize_ledger(raw_value: Optional[str]) -> str:
    candidate = (raw_value or "").strip().lower()
    if not candidate:
        candidate = "sql"

    if candidate not in SUPPORTED_LEDGERS:
        raise EngineSettingsError(f"Unsupported ledger '{candidate}'")
    return candidate


def _parse_float(raw_value: Optional[str], default: float, env_key: str) -> float:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        return float(raw_value)
    except ValueError as exc:
        raise EngineSettingsError(f"{env_key} must be numeric (received '{raw_value}')") from exc


def _parse_positive_int(raw_value: Optional[str], default: int, env_key: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        value = int(raw_value)
    except ValueError as exc:
        raise EngineSettingsError(f"{env_key} must be an integer (received '{raw_value}')") from exc

    if value < 1:
        raise EngineSettingsError(f"{env_key} must be at least 1 (received '{raw_value}')")
    return value


def _build_http_ledger_config(timeout_seconds: float) -> HttpLedgerConfig:
    missing = [env_key for env_key in REQUIRED_HTTP_LEDGER_ENV_VARS if not os.getenv(env_key)]
    if missing:
        formatted_missing = ", ".join(missing)
        raise EngineSettingsError(f"{LEDGER_ENV}=http requires the following env vars: {formatted_missing}")

    return HttpLedgerConfig(
        api_base=os.environ["BUDGET_ENGINE_LEDGER_API_BASE"].strip().rstrip("/"),
        timeout_seconds=timeout_seconds,
    )
