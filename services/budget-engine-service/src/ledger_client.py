"""
HTTP-backed ledger: reads budgets, transactions, accounts, and categories from a
remote ledger API and writes budgets and saved templates through it.

Transport concerns (timeouts, retries with backoff, request-id propagation,
structured logging) live in `ResilientHttpClient`; `HttpBudgetLedger` maps the
ledger protocol onto REST paths and translates every transport or payload error
into `CollaboratorFailure`.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from shared.engine_settings import HttpLedgerConfig
from shared.observability.telemetry import CORRELATION_ID_HEADER, current_request_id

from .budget_model import Account, Budget, BudgetDraft, BudgetTemplate, Category, SavedTemplate, Transaction
from .errors import CollaboratorFailure
from .schemas import (
    AccountModel,
    BudgetDraftModel,
    BudgetModel,
    BudgetTemplatePayload,
    CategoryModel,
    SavedTemplateModel,
    TransactionModel,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(10.0, connect=3.0)
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_FACTOR = 0.25
RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}
# A POST may have been applied before the failure surfaced, so it is never replayed
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

_BUDGETS = TypeAdapter(list[BudgetModel])
_TRANSACTIONS = TypeAdapter(list[TransactionModel])
_ACCOUNTS = TypeAdapter(list[AccountModel])
_CATEGORIES = TypeAdapter(list[CategoryModel])
_TEMPLATES = TypeAdapter(list[SavedTemplateModel])
_TEMPLATE = TypeAdapter(SavedTemplateModel)


@dataclass
class RequestMetrics:
    attempts: int
    latency_ms: float


class ResilientHttpClient:
    """Async httpx helper with retries, timeouts, and structured logging."""

    def __init__(
        self,
        *,
        timeout: httpx.Timeout | float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        correlation_header: str = CORRELATION_ID_HEADER,
        retry_status_codes: set[int] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._backoff_factor = max(0.0, backoff_factor)
        self._correlation_header = correlation_header
        self._retry_status_codes = retry_status_codes or RETRYABLE_STATUS_CODES
        self._transport = transport

    async def request(
        self,
        method: str,
        url: str,
        *,
        request_id: str,
        headers: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> tuple[httpx.Response, RequestMetrics]:
        attempts = 0
        start_time = time.perf_counter()

        while True:
            attempts += 1
            try:
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    response = await client.request(
                        method=method.upper(),
                        url=url,
                        headers=self._build_headers(headers, request_id),
                        **kwargs,
                    )
                response.raise_for_status()
            except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                metrics = self._metrics(start_time, attempts)
                if self._should_retry(exc, method) and attempts < self._max_attempts:
                    self._log("retry", logging.WARNING, method, url, request_id, metrics, error=str(exc))
                    await asyncio.sleep(self._backoff_seconds(attempts))
                    continue
                self._log("failure", logging.ERROR, method, url, request_id, metrics, error=str(exc))
                raise

            metrics = self._metrics(start_time, attempts)
            self._log("success", logging.INFO, method, url, request_id, metrics, status_code=response.status_code)
            return response, metrics

    def _build_headers(self, headers: Mapping[str, str] | None, request_id: str) -> MutableMapping[str, str]:
        merged: MutableMapping[str, str] = dict(headers or {})
        merged.setdefault(self._correlation_header, request_id)
        return merged

    def _metrics(self, start_time: float, attempts: int) -> RequestMetrics:
        latency_ms = (time.perf_counter() - start_time) * 1000
        return RequestMetrics(attempts=attempts, latency_ms=round(latency_ms, 2))

    def _should_retry(self, exc: Exception, method: str) -> bool:
        if method.upper() not in IDEMPOTENT_METHODS:
            return False
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code in self._retry_status_codes
        return isinstance(exc, httpx.RequestError)

    def _backoff_seconds(self, attempts: int) -> float:
        base = self._backoff_factor * (2 ** (attempts - 1))
        return base + random.uniform(0, base / 2 if base else 0)

    def _log(
        self,
        outcome: str,
        level: int,
        method: str,
        url: str,
        request_id: str,
        metrics: RequestMetrics,
        **extra: Any,
    ) -> None:
        logger.log(
            level,
            {
                "event": "ledger_http_request",
                "outcome": outcome,
                "url": url,
                "method": method.upper(),
                "request_id": request_id,
                "attempts": metrics.attempts,
                "latency_ms": metrics.latency_ms,
                **extra,
            },
        )


class HttpBudgetLedger:
    """Ledger adapter for a remote REST API rooted at `api_base`."""

    name = "http"

    def __init__(self, api_base: str, *, client: ResilientHttpClient | None = None) -> None:
        self._api_base = api_base.rstrip("/")
        self._client = client or ResilientHttpClient()

    @classmethod
    def from_config(cls, config: HttpLedgerConfig) -> "HttpBudgetLedger":
        return cls(config.api_base, client=ResilientHttpClient(timeout=config.timeout_seconds))

    async def list_active_budgets(self, user_id: str) -> List[Budget]:
        payload = await self._get_json(f"/users/{user_id}/budgets", params={"active": "true"})
        return [model.to_dataclass() for model in self._parse(_BUDGETS, payload)]

    async def list_budgets_in_window(self, user_id: str, start: date, end: date) -> List[Budget]:
        params = {"active": "true", "start": start.isoformat(), "end": end.isoformat()}
        payload = await self._get_json(f"/users/{user_id}/budgets", params=params)
        return [model.to_dataclass() for model in self._parse(_BUDGETS, payload)]

    async def list_expense_transactions(
        self,
        user_id: str,
        category_ids: Optional[List[str]],
        start: date,
        end: date,
    ) -> List[Transaction]:
        params: list[tuple[str, str]] = [("type", "expense"), ("start", start.isoformat()), ("end", end.isoformat())]
        params.extend(("category_id", category_id) for category_id in category_ids or ())
        payload = await self._get_json(f"/users/{user_id}/transactions", params=params)
        return [model.to_dataclass() for model in self._parse(_TRANSACTIONS, payload)]

    async def list_transactions(self, user_id: str, start: Optional[date], end: date) -> List[Transaction]:
        params = {"end": end.isoformat()}
        if start is not None:
            params["start"] = start.isoformat()
        payload = await self._get_json(f"/users/{user_id}/transactions", params=params)
        return [model.to_dataclass() for model in self._parse(_TRANSACTIONS, payload)]

    async def list_accounts(self, user_id: str) -> List[Account]:
        payload = await self._get_json(f"/users/{user_id}/accounts")
        return [model.to_dataclass() for model in self._parse(_ACCOUNTS, payload)]

    async def list_categories(self, user_id: str) -> List[Category]:
        payload = await self._get_json(f"/users/{user_id}/categories")
        return [model.to_dataclass() for model in self._parse(_CATEGORIES, payload)]

    async def get_budget(self, user_id: str, budget_id: str) -> Optional[Budget]:
        payload = await self._get_json(f"/users/{user_id}/budgets/{budget_id}", missing_ok=True)
        if payload is None:
            return None
        return self._parse(TypeAdapter(BudgetModel), payload).to_dataclass()

    async def list_budget_history(self, user_id: str, limit: int) -> List[Budget]:
        payload = await self._get_json(f"/users/{user_id}/budgets/history", params={"limit": limit})
        return [model.to_dataclass() for model in self._parse(_BUDGETS, payload)]

    async def create_budget(self, draft: BudgetDraft) -> Budget:
        body = BudgetDraftModel.from_dataclass(draft).model_dump(mode="json")
        response = await self._send("POST", f"/users/{draft.user_id}/budgets", json=body)
        return self._parse(TypeAdapter(BudgetModel), self._decode(response)).to_dataclass()

    async def deactivate_budget(self, user_id: str, budget_id: str) -> bool:
        response = await self._send("POST", f"/users/{user_id}/budgets/{budget_id}/deactivate", missing_ok=True)
        return response is not None

    async def list_templates(self, user_id: str) -> List[SavedTemplate]:
        payload = await self._get_json(f"/users/{user_id}/budget-templates")
        return [model.to_dataclass() for model in self._parse(_TEMPLATES, payload)]

    async def get_template(self, user_id: str, template_id: str) -> Optional[SavedTemplate]:
        payload = await self._get_json(f"/users/{user_id}/budget-templates/{template_id}", missing_ok=True)
        if payload is None:
            return None
        return self._parse(_TEMPLATE, payload).to_dataclass()

    async def create_template(self, user_id: str, settings: BudgetTemplate) -> SavedTemplate:
        body = BudgetTemplatePayload.from_dataclass(settings).model_dump(mode="json")
        response = await self._send("POST", f"/users/{user_id}/budget-templates", json=body)
        return self._parse(_TEMPLATE, self._decode(response)).to_dataclass()

    async def update_template(
        self,
        user_id: str,
        template_id: str,
        settings: BudgetTemplate,
    ) -> Optional[SavedTemplate]:
        body = BudgetTemplatePayload.from_dataclass(settings).model_dump(mode="json")
        response = await self._send(
            "PUT",
            f"/users/{user_id}/budget-templates/{template_id}",
            json=body,
            missing_ok=True,
        )
        if response is None:
            return None
        return self._parse(_TEMPLATE, self._decode(response)).to_dataclass()

    async def deactivate_template(self, user_id: str, template_id: str) -> bool:
        response = await self._send("DELETE", f"/users/{user_id}/budget-templates/{template_id}", missing_ok=True)
        return response is not None

    async def increment_template_usage(self, user_id: str, template_id: str) -> None:
        await self._send("POST", f"/users/{user_id}/budget-templates/{template_id}/usage")

    async def _get_json(self, path: str, *, params: Any = None, missing_ok: bool = False) -> Any:
        response = await self._send("GET", path, params=params, missing_ok=missing_ok)
        if response is None:
            return None
        return self._decode(response)

    async def _send(self, method: str, path: str, *, missing_ok: bool = False, **kwargs: Any) -> httpx.Response | None:
        url = f"{self._api_base}{path}"
        try:
            response, _ = await self._client.request(method, url, request_id=current_request_id(), **kwargs)
        except httpx.HTTPStatusError as exc:
            if missing_ok and exc.response.status_code == 404:
                return None
            raise CollaboratorFailure(f"Ledger API returned {exc.response.status_code} for {method} {path}") from exc
        except httpx.HTTPError as exc:
            raise CollaboratorFailure(f"Ledger API unreachable for {method} {path}") from exc
        return response

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise CollaboratorFailure(f"Ledger API returned non-JSON body for {response.request.url}") from exc

    def _parse(self, adapter: TypeAdapter, payload: Any) -> Any:
        try:
            return adapter.validate_python(payload)
        except ValidationError as exc:
            raise CollaboratorFailure("Ledger API returned a malformed payload") from exc
