from datetime import date
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from ledger_fakes import InMemoryLedger, expense, income, make_budget, make_template

from src.budget_model import Account, Category
from src.engine import BudgetEngine
from src.errors import CollaboratorFailure
from src.main import app, get_budget_engine

AS_OF = "2024-03-15"


@pytest.fixture
def ledger() -> InMemoryLedger:
    ledger = InMemoryLedger()
    ledger.add_budget(make_budget("food", name="Food", amount="1000", categories=["cat-food"]))
    ledger.add_budget(make_budget("fun", name="Fun", amount="200", categories=["cat-fun"]))
    ledger.add_budget(make_budget("feb", name="Food", start=date(2024, 2, 1), end=date(2024, 2, 29)))
    ledger.add_transactions(
        "user-1",
        [
            income("3000", date(2024, 3, 1)),
            expense("850", date(2024, 3, 5), category_id="cat-food"),
            expense("240", date(2024, 3, 6), category_id="cat-fun"),
        ],
    )
    ledger.add_categories("user-1", [Category("cat-food", "Food"), Category("cat-fun", "Fun")])
    ledger.add_accounts("user-1", [Account("acc-1", "checking")])
    return ledger


@pytest.fixture
def client(ledger: InMemoryLedger) -> Iterator[TestClient]:
    app.dependency_overrides[get_budget_engine] = lambda: BudgetEngine(ledger, max_concurrency=2)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["service"] == "budget-engine-service"


def test_current_budgets_include_spend_figures(client: TestClient) -> None:
    response = client.get("/users/user-1/budgets/current", params={"as_of": AS_OF})

    assert response.status_code == 200
    body = {item["id"]: item for item in response.json()}
    assert set(body) == {"food", "fun"}
    assert body["food"]["actual_spent"] == 850.0
    assert body["food"]["remaining"] == 150.0
    assert body["food"]["percentage_used"] == pytest.approx(85.0)
    assert body["food"]["days_remaining"] == 16
    assert body["fun"]["is_over_budget"] is True
    assert body["food"]["category_ids"] == ["cat-food"]


def test_request_id_is_echoed(client: TestClient) -> None:
    response = client.get("/users/user-1/budgets/current", params={"as_of": AS_OF}, headers={"x-request-id": "abc"})

    assert response.headers["x-request-id"] == "abc"


def test_alerts_endpoint_orders_by_priority(client: TestClient) -> None:
    response = client.get("/users/user-1/budgets/alerts", params={"as_of": AS_OF})

    assert response.status_code == 200
    alerts = response.json()
    assert [(alert["id"], alert["type"], alert["priority"]) for alert in alerts] == [
        ("fun", "exceeded", "high"),
        ("food", "approaching", "medium"),
    ]
    assert alerts[0]["message"] == "Budget exceeded by 20.0%"


def test_status_and_performance(client: TestClient) -> None:
    status = client.get("/users/user-1/budgets/status", params={"as_of": AS_OF}).json()
    performance = client.get("/users/user-1/budgets/performance", params={"as_of": AS_OF}).json()

    assert [item["id"] for item in status["at_risk"]] == ["food"]
    assert [item["id"] for item in status["over_budget"]] == ["fun"]
    assert status["on_track"] == []
    assert performance["total_budgets"] == 2
    assert performance["total_budget_amount"] == 1200.0
    assert performance["budgets_over_limit"] == 1


def test_history_trends_and_events(client: TestClient) -> None:
    history = client.get("/users/user-1/budgets/history", params={"as_of": AS_OF, "limit": 2}).json()
    trends = client.get("/users/user-1/budgets/trends", params={"as_of": AS_OF, "months": 2}).json()
    events = client.get("/users/user-1/events", params={"as_of": AS_OF}).json()

    assert len(history) == 2
    assert [point["period"] for point in trends] == ["Feb 2024", "Mar 2024"]
    assert trends[1]["budgeted"] == 1200.0
    assert {event["budget_id"] for event in events} == {"food", "fun"}
    assert events[0]["date"] == "2024-03-31"


def test_health_score_insights_and_dashboard(client: TestClient) -> None:
    score = client.get("/users/user-1/health-score", params={"as_of": AS_OF}).json()
    insights = client.get("/users/user-1/insights", params={"as_of": AS_OF}).json()
    dashboard = client.get("/users/user-1/dashboard", params={"as_of": AS_OF}).json()

    assert score["score"] == sum(factor["points"] for factor in score["factors"])
    assert score["max_score"] == 100
    assert len(insights) <= 4
    assert dashboard["health_score"] == score
    assert dashboard["insights"] == insights
    assert dashboard["savings_rate"] == pytest.approx((3000 - 1090) * 100 / 3000)


def test_duplicate_and_delete_round_trip(client: TestClient, ledger: InMemoryLedger) -> None:
    created = client.post("/users/user-1/budgets/food/duplicate", params={"as_of": AS_OF})

    assert created.status_code == 201
    assert created.json()["name"] == "Food (Copy)"
    assert created.json()["start_date"] == AS_OF
    assert created.json()["end_date"] == "2024-04-15"

    deleted = client.delete(f"/users/user-1/budgets/{created.json()['id']}")
    assert deleted.status_code == 204
    assert ledger.budgets[created.json()["id"]].is_active is False


def test_recurring_budgets_endpoint(client: TestClient) -> None:
    payload = {"template": {"name": "Gym", "amount": "45", "category_ids": ["cat-fit"]}, "months": 2}

    response = client.post("/users/user-1/budgets/recurring", params={"as_of": AS_OF}, json=payload)

    assert response.status_code == 201
    assert [budget["name"] for budget in response.json()] == ["Gym - March 2024", "Gym - April 2024"]


def test_from_previous_month_endpoint(client: TestClient) -> None:
    response = client.post(
        "/users/user-1/budgets/from-previous-month",
        params={"as_of": AS_OF},
        json={"target_month": "2024-03"},
    )

    assert response.status_code == 201
    assert [(budget["name"], budget["start_date"]) for budget in response.json()] == [("Food", "2024-03-01")]


def test_missing_budget_maps_to_404(client: TestClient) -> None:
    response = client.post("/users/user-1/budgets/nope/duplicate", params={"as_of": AS_OF})

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_invalid_template_maps_to_422(client: TestClient) -> None:
    payload = {"template": {"name": "Broken", "amount": "-5"}, "months": 1}

    response = client.post("/users/user-1/budgets/recurring", params={"as_of": AS_OF}, json=payload)

    assert response.status_code == 422
    assert response.json()["error"] == "invalid_budget"


def test_bad_target_month_maps_to_422(client: TestClient) -> None:
    response = client.post(
        "/users/user-1/budgets/from-previous-month",
        params={"as_of": AS_OF},
        json={"target_month": "March"},
    )

    assert response.status_code == 422
    assert response.json()["error"] == "invalid_request"


def test_ledger_failure_maps_to_502(client: TestClient, ledger: InMemoryLedger) -> None:
    ledger.failures["list_active_budgets"] = CollaboratorFailure("ledger offline")

    response = client.get("/users/user-1/budgets/current", params={"as_of": AS_OF})

    assert response.status_code == 502
    assert response.json() == {"error": "collaborator_failure", "details": "ledger offline"}


def test_internal_value_error_is_a_server_error(ledger: InMemoryLedger) -> None:
    ledger.failures["list_active_budgets"] = ValueError("unexpected None in ledger row")
    app.dependency_overrides[get_budget_engine] = lambda: BudgetEngine(ledger)
    try:
        response = TestClient(app, raise_server_exceptions=False).get(
            "/users/user-1/budgets/current", params={"as_of": AS_OF}
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500


def test_template_library_routes(client: TestClient, ledger: InMemoryLedger) -> None:
    ledger.add_template(make_template("g-food", user_id=None, name="Groceries", is_global=True, usage_count=5))

    saved = client.post("/users/user-1/templates", json={"name": "Gym", "amount": "45", "category_ids": ["cat-fit"]})
    listed = client.get("/users/user-1/templates").json()
    searched = client.get("/users/user-1/templates", params={"q": "gro"}).json()
    popular = client.get("/users/user-1/templates/popular").json()
    recent = client.get("/users/user-1/templates/recent").json()

    assert saved.status_code == 201
    gym_id = saved.json()["id"]
    assert saved.json()["usage_count"] == 0
    assert [item["id"] for item in listed] == ["g-food", gym_id]
    assert [item["id"] for item in searched] == ["g-food"]
    assert popular[0]["id"] == "g-food"
    assert [item["id"] for item in recent] == [gym_id]

    updated = client.put(f"/users/user-1/templates/{gym_id}", json={"name": "Gym", "amount": "60"})
    fetched = client.get(f"/users/user-1/templates/{gym_id}")
    assert updated.status_code == 200
    assert fetched.json()["amount"] == 60.0
    assert fetched.json()["category_ids"] is None

    copy = client.post("/users/user-1/templates/g-food/duplicate")
    assert copy.status_code == 201
    assert copy.json()["name"] == "Groceries (Copy)"
    assert copy.json()["is_global"] is False

    assert client.delete(f"/users/user-1/templates/{gym_id}").status_code == 204
    assert client.get(f"/users/user-1/templates/{gym_id}").status_code == 404
    assert client.delete("/users/user-1/templates/g-food").status_code == 404


def test_budget_from_template_route(client: TestClient, ledger: InMemoryLedger) -> None:
    ledger.add_template(make_template("g-food", user_id=None, name="Groceries", is_global=True))

    default = client.post("/users/user-1/templates/g-food/budgets", params={"as_of": AS_OF})
    custom = client.post(
        "/users/user-1/templates/g-food/budgets",
        params={"as_of": AS_OF},
        json={"name": "April food", "amount": "320", "start_date": "2024-04-01", "end_date": "2024-04-30"},
    )
    missing = client.post("/users/user-1/templates/nope/budgets", params={"as_of": AS_OF})

    assert default.status_code == 201
    assert (default.json()["start_date"], default.json()["end_date"]) == (AS_OF, "2024-04-15")
    assert custom.status_code == 201
    assert custom.json()["name"] == "April food"
    assert custom.json()["amount"] == 320.0
    assert ledger.templates["g-food"].usage_count == 2
    assert missing.status_code == 404


def test_save_budget_as_template_route(client: TestClient, ledger: InMemoryLedger) -> None:
    response = client.post("/users/user-1/budgets/food/save-as-template", json={"name": "Food plan"})

    assert response.status_code == 201
    assert response.json()["name"] == "Food plan"
    assert response.json()["amount"] == 1000.0
    assert response.json()["category_ids"] == ["cat-food"]
    assert client.post("/users/user-1/budgets/nope/save-as-template").status_code == 404
