"""
Budget Engine Service exposes spend tracking, alerts, health scoring, trends,
insights, budget templating, and a saved template library over a pluggable
ledger (SQL or remote HTTP).
"""

import logging
from datetime import date

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from shared.engine_settings import EngineSettings, EngineSettingsError, load_engine_settings
from shared.observability.privacy import hash_payload, redact_fields
from shared.observability.telemetry import install_request_context, setup_telemetry

from .engine import BudgetEngine
from .errors import CollaboratorFailure, InvalidBudget, InvalidRequest, NotFound
from .ledger import BudgetLedger
from .ledger_client import HttpBudgetLedger
from .persistence import SqlBudgetLedger, build_session_factory, init_db
from .schemas import (
    BudgetAlertModel,
    BudgetHistoryEntryModel,
    BudgetOverridesPayload,
    BudgetPerformanceModel,
    BudgetResponseModel,
    BudgetStatusModel,
    BudgetTemplatePayload,
    BudgetWithSpendingModel,
    DashboardModel,
    DuplicateTemplateRequest,
    FromPreviousMonthRequest,
    HealthScoreModel,
    InsightModel,
    RecurringBudgetRequest,
    SaveAsTemplateRequest,
    SavedTemplateResponseModel,
    TrendPointModel,
    UpcomingEventModel,
)

app = FastAPI(title="Budget Engine Service")
logger = logging.getLogger(__name__)

setup_telemetry(app, service_name="budget-engine-service")
install_request_context(app)

# Logged verbatim; every other template field is redacted.
TEMPLATE_LOG_FIELDS = ("amount", "period", "alert_percentage", "alert_enabled")


try:
    ENGINE_SETTINGS = load_engine_settings()
except EngineSettingsError as exc:
    logger.error("Failed to load budget engine settings: %s", exc)
    raise


def _build_ledger(settings: EngineSettings) -> BudgetLedger:
    if settings.ledger_name == "http" and settings.http_ledger is not None:
        return HttpBudgetLedger.from_config(settings.http_ledger)
    return SqlBudgetLedger(build_session_factory())


def _initialize_engine() -> BudgetEngine:
    ledger = _build_ledger(ENGINE_SETTINGS)
    logger.info(
        {
            "event": "budget_engine_configured",
            "ledger": ledger.name,
            "max_concurrency": ENGINE_SETTINGS.max_concurrency,
            "trend_months": ENGINE_SETTINGS.trend_months,
            "observation_days": ENGINE_SETTINGS.observation_days,
        }
    )
    return BudgetEngine.from_settings(ledger, ENGINE_SETTINGS)


_budget_engine: BudgetEngine | None = None


def get_budget_engine() -> BudgetEngine:
    """FastAPI dependency returning the process-wide engine, built on first use."""
    global _budget_engine
    if _budget_engine is None:
        _budget_engine = _initialize_engine()
    return _budget_engine


def reload_engine_for_tests() -> None:
    """
    Refresh settings and engine wiring after tests mutate environment variables.
    """

    global ENGINE_SETTINGS
    global _budget_engine

    ENGINE_SETTINGS = load_engine_settings()
    _budget_engine = None


def error_response(status_code: int, error_code: str, details: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error_code, "details": details},
    )


def _log_failure(request: Request, event: str, exc: Exception, level: int = logging.WARNING) -> None:
    logger.log(
        level,
        {
            "event": event,
            "path": request.url.path,
            "method": request.method,
            "request_id": getattr(request.state, "request_id", None),
            "error": str(exc),
        },
    )


@app.exception_handler(NotFound)
async def handle_not_found(request: Request, exc: NotFound) -> JSONResponse:
    _log_failure(request, "not_found", exc, logging.INFO)
    return error_response(404, "not_found", str(exc))


@app.exception_handler(InvalidBudget)
async def handle_invalid_budget(request: Request, exc: InvalidBudget) -> JSONResponse:
    _log_failure(request, "invalid_budget", exc)
    return error_response(422, "invalid_budget", str(exc))


@app.exception_handler(CollaboratorFailure)
async def handle_collaborator_failure(request: Request, exc: CollaboratorFailure) -> JSONResponse:
    _log_failure(request, "collaborator_failure", exc, logging.ERROR)
    return error_response(502, "collaborator_failure", str(exc))


@app.exception_handler(InvalidRequest)
async def handle_invalid_request(request: Request, exc: InvalidRequest) -> JSONResponse:
    _log_failure(request, "invalid_request", exc)
    return error_response(422, "invalid_request", str(exc))


@app.on_event("startup")
def on_startup() -> None:
    """Create ledger tables when serving from the SQL ledger."""
    if ENGINE_SETTINGS.ledger_name == "sql":
        init_db()


def _resolve_today(as_of: date | None) -> date:
    return as_of or date.today()


@app.get("/health")
def health_check() -> dict:
    """Reports service readiness and the configured ledger for uptime checks."""
    return {"status": "ok", "service": "budget-engine-service", "ledger": ENGINE_SETTINGS.ledger_name}


@app.get("/users/{user_id}/budgets/current", response_model=list[BudgetWithSpendingModel])
async def current_budgets(
    user_id: str,
    as_of: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> list[BudgetWithSpendingModel]:
    """
    Active budgets whose window contains `as_of` (default today), each with
    spent, remaining, percentage used, and days remaining.
    """
    budgets = await engine.get_current_budgets(user_id, today=_resolve_today(as_of))
    return [BudgetWithSpendingModel.from_spending(item) for item in budgets]


@app.get("/users/{user_id}/budgets/alerts", response_model=list[BudgetAlertModel])
async def budget_alerts(
    user_id: str,
    as_of: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> list[BudgetAlertModel]:
    """Alerts for current budgets at or past their threshold, highest priority first."""
    alerts = await engine.get_budget_alerts(user_id, today=_resolve_today(as_of))
    return [BudgetAlertModel.from_dataclass(alert) for alert in alerts]


@app.get("/users/{user_id}/budgets/status", response_model=BudgetStatusModel)
async def budget_status(
    user_id: str,
    as_of: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> BudgetStatusModel:
    status = await engine.get_budget_status(user_id, today=_resolve_today(as_of))
    return BudgetStatusModel.from_dataclass(status)


@app.get("/users/{user_id}/budgets/performance", response_model=BudgetPerformanceModel)
async def budget_performance(
    user_id: str,
    as_of: date | None = None,
    start: date | None = None,
    end: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> BudgetPerformanceModel:
    """
    Totals for budgets that lie inside [start, end].
    Both bounds must be given together; otherwise the calendar month of `as_of` is used.
    """
    performance = await engine.get_budget_performance(
        user_id,
        today=_resolve_today(as_of),
        start=start,
        end=end,
    )
    return BudgetPerformanceModel.from_dataclass(performance)


@app.get("/users/{user_id}/budgets/history", response_model=list[BudgetHistoryEntryModel])
async def budget_history(
    user_id: str,
    as_of: date | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    engine: BudgetEngine = Depends(get_budget_engine),
) -> list[BudgetHistoryEntryModel]:
    entries = await engine.get_budget_history(user_id, today=_resolve_today(as_of), limit=limit)
    return [BudgetHistoryEntryModel.from_dataclass(entry) for entry in entries]


@app.get("/users/{user_id}/budgets/trends", response_model=list[TrendPointModel])
async def budget_trends(
    user_id: str,
    as_of: date | None = None,
    months: int | None = Query(default=None, ge=1, le=36),
    engine: BudgetEngine = Depends(get_budget_engine),
) -> list[TrendPointModel]:
    """Monthly budgeted vs spent totals, oldest month first, ending with the month of `as_of`."""
    points = await engine.get_budget_trends(user_id, months, today=_resolve_today(as_of))
    return [TrendPointModel.from_dataclass(point) for point in points]


@app.get("/users/{user_id}/health-score", response_model=HealthScoreModel)
async def health_score(
    user_id: str,
    as_of: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> HealthScoreModel:
    score = await engine.get_health_score(user_id, today=_resolve_today(as_of))
    return HealthScoreModel.from_dataclass(score)


@app.get("/users/{user_id}/insights", response_model=list[InsightModel])
async def insights(
    user_id: str,
    as_of: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> list[InsightModel]:
    items = await engine.get_insights(user_id, today=_resolve_today(as_of))
    return [InsightModel.from_dataclass(item) for item in items]


@app.get("/users/{user_id}/events", response_model=list[UpcomingEventModel])
async def upcoming_events(
    user_id: str,
    as_of: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> list[UpcomingEventModel]:
    events = await engine.get_upcoming_events(user_id, today=_resolve_today(as_of))
    return [UpcomingEventModel.from_dataclass(event) for event in events]


@app.get("/users/{user_id}/dashboard", response_model=DashboardModel)
async def dashboard(
    user_id: str,
    as_of: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> DashboardModel:
    """
    Savings rate, current budgets, alerts, health score, and insights computed
    from a single ledger snapshot so every figure agrees.
    """
    report = await engine.get_dashboard(user_id, today=_resolve_today(as_of))
    return DashboardModel(
        savings_rate=report.snapshot.savings_rate,
        current_budgets=[BudgetWithSpendingModel.from_spending(item) for item in report.snapshot.current_budgets],
        alerts=[BudgetAlertModel.from_dataclass(alert) for alert in report.alerts],
        health_score=HealthScoreModel.from_dataclass(report.health_score),
        insights=[InsightModel.from_dataclass(item) for item in report.insights],
    )


@app.post("/users/{user_id}/budgets/recurring", response_model=list[BudgetResponseModel], status_code=201)
async def create_recurring_budgets(
    user_id: str,
    payload: RecurringBudgetRequest,
    as_of: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> list[BudgetResponseModel]:
    """
    Create one budget per calendar month for `months` months starting with the month of `as_of`.
    Budgets created before a failure are kept; the failure is reported.
    """
    logger.info(
        {
            "event": "recurring_budgets_requested",
            "user": hash_payload(user_id),
            "months": payload.months,
            "template": redact_fields(payload.template.model_dump(mode="json"), TEMPLATE_LOG_FIELDS),
        }
    )
    created = await engine.create_recurring_budget(
        user_id,
        payload.template.to_dataclass(),
        payload.months,
        today=_resolve_today(as_of),
    )
    return [BudgetResponseModel.from_dataclass(budget) for budget in created]


@app.post("/users/{user_id}/budgets/from-previous-month", response_model=list[BudgetResponseModel], status_code=201)
async def create_from_previous_month(
    user_id: str,
    payload: FromPreviousMonthRequest | None = None,
    as_of: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> list[BudgetResponseModel]:
    target_month = payload.target_month if payload is not None else None
    created = await engine.create_budget_from_previous_month(
        user_id,
        target_month,
        today=_resolve_today(as_of),
    )
    return [BudgetResponseModel.from_dataclass(budget) for budget in created]


@app.post("/users/{user_id}/budgets/{budget_id}/duplicate", response_model=BudgetResponseModel, status_code=201)
async def duplicate_budget(
    user_id: str,
    budget_id: str,
    as_of: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> BudgetResponseModel:
    """Copy a budget into a new window that starts on `as_of` and runs one month."""
    budget = await engine.duplicate_budget(user_id, budget_id, today=_resolve_today(as_of))
    return BudgetResponseModel.from_dataclass(budget)


@app.delete("/users/{user_id}/budgets/{budget_id}", status_code=204)
async def delete_budget(
    user_id: str,
    budget_id: str,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> None:
    """Deactivate the budget; it stays in history but no longer counts as current."""
    await engine.delete_budget(user_id, budget_id)


@app.post(
    "/users/{user_id}/budgets/{budget_id}/save-as-template",
    response_model=SavedTemplateResponseModel,
    status_code=201,
)
async def save_budget_as_template(
    user_id: str,
    budget_id: str,
    payload: SaveAsTemplateRequest | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> SavedTemplateResponseModel:
    """Store the budget's settings in the template library, replacing the user's template of the same name."""
    name = payload.name if payload is not None else None
    template = await engine.save_budget_as_template(user_id, budget_id, name)
    return SavedTemplateResponseModel.from_dataclass(template)


@app.get("/users/{user_id}/templates", response_model=list[SavedTemplateResponseModel])
async def list_templates(
    user_id: str,
    q: str | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> list[SavedTemplateResponseModel]:
    """The user's templates plus global ones, global first, then most used; `q` searches name and description."""
    templates = await engine.list_templates(user_id, q)
    return [SavedTemplateResponseModel.from_dataclass(template) for template in templates]


@app.get("/users/{user_id}/templates/popular", response_model=list[SavedTemplateResponseModel])
async def popular_templates(
    user_id: str,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> list[SavedTemplateResponseModel]:
    templates = await engine.get_popular_templates(user_id)
    return [SavedTemplateResponseModel.from_dataclass(template) for template in templates]


@app.get("/users/{user_id}/templates/recent", response_model=list[SavedTemplateResponseModel])
async def recent_templates(
    user_id: str,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> list[SavedTemplateResponseModel]:
    templates = await engine.get_recent_templates(user_id)
    return [SavedTemplateResponseModel.from_dataclass(template) for template in templates]


@app.get("/users/{user_id}/templates/{template_id}", response_model=SavedTemplateResponseModel)
async def get_template(
    user_id: str,
    template_id: str,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> SavedTemplateResponseModel:
    template = await engine.get_template(user_id, template_id)
    return SavedTemplateResponseModel.from_dataclass(template)


@app.post("/users/{user_id}/templates", response_model=SavedTemplateResponseModel, status_code=201)
async def save_template(
    user_id: str,
    payload: BudgetTemplatePayload,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> SavedTemplateResponseModel:
    """Save settings under their name; an existing template of the user's with that name is overwritten."""
    logger.info(
        {
            "event": "template_save_requested",
            "user": hash_payload(user_id),
            "template": redact_fields(payload.model_dump(mode="json"), TEMPLATE_LOG_FIELDS),
        }
    )
    template = await engine.save_template(user_id, payload.to_dataclass())
    return SavedTemplateResponseModel.from_dataclass(template)


@app.put("/users/{user_id}/templates/{template_id}", response_model=SavedTemplateResponseModel)
async def update_template(
    user_id: str,
    template_id: str,
    payload: BudgetTemplatePayload,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> SavedTemplateResponseModel:
    template = await engine.update_template(user_id, template_id, payload.to_dataclass())
    return SavedTemplateResponseModel.from_dataclass(template)


@app.delete("/users/{user_id}/templates/{template_id}", status_code=204)
async def delete_template(
    user_id: str,
    template_id: str,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> None:
    await engine.delete_template(user_id, template_id)


@app.post(
    "/users/{user_id}/templates/{template_id}/duplicate",
    response_model=SavedTemplateResponseModel,
    status_code=201,
)
async def duplicate_template(
    user_id: str,
    template_id: str,
    payload: DuplicateTemplateRequest | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> SavedTemplateResponseModel:
    new_name = payload.new_name if payload is not None else None
    template = await engine.duplicate_template(user_id, template_id, new_name)
    return SavedTemplateResponseModel.from_dataclass(template)


@app.post("/users/{user_id}/templates/{template_id}/budgets", response_model=BudgetResponseModel, status_code=201)
async def create_budget_from_template(
    user_id: str,
    template_id: str,
    payload: BudgetOverridesPayload | None = None,
    as_of: date | None = None,
    engine: BudgetEngine = Depends(get_budget_engine),
) -> BudgetResponseModel:
    """
    Create a budget from a saved template, starting on `as_of` and running one month
    unless the overrides say otherwise. Counts toward the template's usage.
    """
    overrides = payload.to_dataclass() if payload is not None else None
    budget = await engine.create_budget_from_template(
        user_id,
        template_id,
        overrides,
        today=_resolve_today(as_of),
    )
    return BudgetResponseModel.from_dataclass(budget)
