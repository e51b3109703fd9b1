from datetime import date
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db
from app.db.base import Base
from app.main import app
from app.models.contribution import Contribution
from app.models.enums import RoleName
from app.models.tenant import Tenant
from app.models.user import User
from app.utils.decimal_math import money


def _client() -> tuple[TestClient, sessionmaker]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    with factory() as db:
        db.add_all(
            [
                Tenant(id=1, code="T1", name="Tenant 1", is_active=True),
                User(email="admin@gmah.local", full_name="Admin", role=RoleName.admin, is_active=True),
                User(email="borrower@test.com", full_name="Borrower", role=RoleName.borrower, is_active=True),
                Contribution(
                    tenant_id=1,
                    contributor_name="Donor",
                    amount=money("40000"),
                    pledge_date=date(2026, 1, 1),
                    received_date=date(2026, 1, 1),
                ),
            ]
        )
        db.commit()

    def override_db():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    return TestClient(app), factory


def test_create_and_read_forecast_over_http() -> None:
    client, _ = _client()
    try:
        created = client.post(
            "/api/v1/treasury/forecast",
            json={
                "forecastDate": "2026-02-01T00:00:00Z",
                "periodDays": 30,
                "scenario": "REALISTIC",
                "currentBalance": "50000.00",
                "metadata": {"kind": "manual", "note": "api test"},
            },
        )
        assert created.status_code == 201
        body = created.json()
        assert body["periodDays"] == 30
        assert body["currentBalance"] == "50000.00"
        assert body["metadata"]["kind"] == "manual"

        fetched = client.get(f"/api/v1/treasury/forecast/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == body["id"]

        latest = client.get("/api/v1/treasury/forecast", params={"days": 30})
        assert latest.status_code == 200
        assert latest.json()["id"] == body["id"]

        summary = client.get("/api/v1/treasury/forecast/summary")
        assert summary.status_code == 200
        assert summary.json()["totalForecasts"] == 1
    finally:
        app.dependency_overrides.clear()


def test_request_validation_rejects_out_of_range_period() -> None:
    client, _ = _client()
    try:
        response = client.post(
            "/api/v1/treasury/forecast",
            json={"forecastDate": "2026-02-01T00:00:00Z", "periodDays": 400, "currentBalance": "10.00"},
        )
        assert response.status_code == 422
    finally:
        app.dependency_overrides.clear()


def test_borrower_cannot_generate_forecast() -> None:
    client, factory = _client()
    with factory() as db:
        borrower_id = db.scalar(select(User.id).where(User.email == "borrower@test.com"))
    try:
        response = client.get("/api/v1/treasury/forecast/quick/30", headers={"X-User-Id": str(borrower_id)})
        assert response.status_code == 403
    finally:
        app.dependency_overrides.clear()


def test_quick_forecast_and_flow_ledger_endpoints() -> None:
    client, _ = _client()
    try:
        quick = client.get("/api/v1/treasury/forecast/quick/14")
        assert quick.status_code == 200
        assert Decimal(quick.json()["currentBalance"]) == Decimal("40000.00")

        recorded = client.post(
            "/api/v1/treasury/flows",
            json={
                "type": "OUTFLOW",
                "category": "OPERATIONAL_EXPENSE",
                "amount": "500.00",
                "description": "Printing",
                "expectedDate": "2026-03-03",
            },
        )
        assert recorded.status_code == 201
        flow_id = recorded.json()["id"]

        realized = client.post(f"/api/v1/treasury/flows/{flow_id}/realize", json={"actualDate": "2026-03-04"})
        assert realized.status_code == 200
        assert realized.json()["isActual"] is True
        again = client.post(f"/api/v1/treasury/flows/{flow_id}/realize", json={"actualDate": "2026-03-05"})
        assert again.status_code == 409

        alerts = client.get("/api/v1/treasury/forecast/alerts/active")
        assert alerts.status_code == 200
    finally:
        app.dependency_overrides.clear()
