import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def headers(client):
    resp = client.post("/api/v1/auth/login", json={"access_key": "test-access-key"})
    assert resp.status_code == 200
    token = resp.json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}


def test_requests_without_token_are_rejected(client) -> None:
    resp = client.get("/api/v1/categories")
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "NO_TOKEN"


def test_login_with_wrong_key(client) -> None:
    resp = client.post("/api/v1/auth/login", json={"access_key": "nope"})
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "INVALID_CREDENTIALS"


def test_process_recurring_income_once_per_month(client, headers) -> None:
    resp = client.post(
        "/api/v1/recurring-income",
        json={
            "source": "Salary",
            "amount_cents": 500_000,
            "recurring_day": 1,
            "start_date": "2020-01-01",
        },
        headers=headers,
    )
    assert resp.status_code == 201

    first = client.post("/api/v1/recurring-income/process", headers=headers).json()
    assert first["count"] == 1
    assert first["message"] == "Created 1 recurring incomes"

    second = client.post("/api/v1/recurring-income/process", headers=headers).json()
    assert second["count"] == 0
    assert second["message"] == "No recurring incomes due"

    template_id = resp.json()["data"]["id"]
    history = client.get(
        f"/api/v1/recurring-income/{template_id}/history", headers=headers
    ).json()
    assert history["count"] == 1
    assert history["data"][0]["amount_cents"] == 500_000


def test_quick_add_shows_in_current_budget(client, headers) -> None:
    resp = client.post(
        "/api/v1/monthly-expenses/quick",
        json={"name": "Lunch", "amount_cents": 1_500, "category": "Food"},
        headers=headers,
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["status"] == "paid"

    budget = client.get(
        "/api/v1/monthly-expenses/budgets/current", headers=headers
    ).json()["data"]
    assert budget["total_actual_cents"] == 1_500
    assert [e["name"] for e in budget["expenses"]] == ["Lunch"]

    categories = client.get(
        "/api/v1/categories", params={"type": "expense"}, headers=headers
    ).json()
    assert [c["name"] for c in categories["data"]] == ["Food"]


def test_insufficient_income_is_a_bad_request(client, headers) -> None:
    income = client.post(
        "/api/v1/income",
        json={"source": "Gift", "amount_cents": 1_000, "date": "2025-03-01"},
        headers=headers,
    ).json()["data"]

    resp = client.post(
        "/api/v1/monthly-expenses/quick",
        json={
            "name": "Shoes",
            "amount_cents": 5_000,
            "source": {"type": "income", "income_id": income["id"]},
        },
        headers=headers,
    )
    assert resp.status_code == 400
    assert "Insufficient" in resp.json()["detail"]
    assert client.get("/api/v1/monthly-expenses", headers=headers).json()["count"] == 0


def test_missing_credit_is_not_found(client, headers) -> None:
    resp = client.get("/api/v1/credits/999", headers=headers)
    assert resp.status_code == 404


def test_statistics_accept_period_filters(client, headers) -> None:
    resp = client.get(
        "/api/v1/rent/statistics", params={"period": "this_year"}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["active_properties_count"] == 0

    resp = client.get(
        "/api/v1/deposits/statistics",
        params={"period": "custom", "start": "2025-03-01", "end": "2025-02-01"},
        headers=headers,
    )
    assert resp.status_code == 400


def test_debt_payment_flow(client, headers) -> None:
    debt = client.post(
        "/api/v1/debts",
        json={"type": "owe", "person": "Arman", "amount_cents": 10_000},
        headers=headers,
    ).json()["data"]

    resp = client.post(
        f"/api/v1/debts/{debt['id']}/payments",
        json={"amount_cents": 10_000},
        headers=headers,
    )
    assert resp.json()["data"]["status"] == "paid"

    stats = client.get("/api/v1/debts/statistics", headers=headers).json()["data"]
    assert stats["paid_debts"] == 1
    assert stats["net_balance_cents"] == 0


def test_deposit_renew_and_close_are_patches(client, headers) -> None:
    deposit = client.post(
        "/api/v1/deposits",
        json={
            "bank_name": "Kaspi",
            "account_number": "KZ01",
            "amount_cents": 100_000,
            "start_date": "2025-01-01",
            "end_date": "2026-01-01",
            "type": "fixed",
        },
        headers=headers,
    ).json()["data"]
    url = f"/api/v1/deposits/{deposit['id']}"

    assert client.put(f"{url}/renew", headers=headers).status_code == 405

    renewed = client.patch(f"{url}/renew", headers=headers)
    assert renewed.status_code == 200
    assert renewed.json()["data"]["end_date"] == "2027-01-01"

    closed = client.patch(f"{url}/close", headers=headers)
    assert closed.status_code == 200
    assert closed.json()["data"]["status"] == "closed"

    assert client.patch(f"{url}/renew", headers=headers).status_code == 400


def test_null_for_required_field_is_unprocessable(client, headers) -> None:
    income = client.post(
        "/api/v1/income",
        json={
            "source": "Gift",
            "amount_cents": 1_000,
            "description": "Birthday",
            "date": "2025-03-01",
        },
        headers=headers,
    ).json()["data"]
    url = f"/api/v1/income/{income['id']}"

    resp = client.put(url, json={"amount_cents": None}, headers=headers)
    assert resp.status_code == 422

    resp = client.put(url, json={"description": None}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["description"] is None
    assert resp.json()["data"]["amount_cents"] == 1_000
