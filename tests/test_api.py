from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import main
import services
from auth import DEBUG_USER_HEADER, issue_token
from config import Settings, get_settings
from database import Base, build_engine
from errors import StorageFault
from models import Entry
from services import CategoryService

USER = "u_" + "a" * 32
SECRET = "api-test-secret"

SCENARIO = {
    "month_key": "2026-02",
    "expected_version": 0,
    "ops": {
        "create_entries": [
            {
                "date": "2026-02-05",
                "type": "expense",
                "amount": 500,
                "category_id": "cat-001",
            }
        ]
    },
}


def _settings(dev_mode: bool = False) -> Settings:
    return Settings(
        database_url="sqlite://",
        timezone="UTC",
        auth_secret=SECRET,
        dev_mode=dev_mode,
        log_level="INFO",
    )


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    with Session(eng) as session:
        CategoryService(session, USER).create("cat-001", "食費")
    return eng


def _client(engine, dev_mode: bool = False) -> TestClient:
    TestSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def get_test_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[main.get_db] = get_test_db
    main.app.dependency_overrides[main.get_clock] = lambda: (lambda: date(2026, 2, 15))
    main.app.dependency_overrides[get_settings] = lambda: _settings(dev_mode)
    return TestClient(main.app)


@pytest.fixture
def client(engine):
    yield _client(engine)
    main.app.dependency_overrides.clear()


def _auth() -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(USER, SECRET)}"}


def _entry_count(engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(Entry))


def test_save_returns_new_version_and_counts(client) -> None:
    response = client.post("/api/monthly", json=SCENARIO, headers=_auth())

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "month_key": "2026-02",
        "new_version": 1,
        "applied": {
            "created_entries": 1,
            "updated_entries": 0,
            "deleted_entries": 0,
            "upserted_daily_budgets": 0,
            "deleted_daily_budgets": 0,
        },
    }


def test_repeated_save_without_refetch_conflicts(client, engine) -> None:
    client.post("/api/monthly", json=SCENARIO, headers=_auth())
    response = client.post("/api/monthly", json=SCENARIO, headers=_auth())

    assert response.status_code == 409
    assert response.json() == {
        "error": "Conflict",
        "message": "Please fetch latest and re-apply changes.",
    }
    assert _entry_count(engine) == 1


def test_zero_amount_is_a_client_error(client, engine) -> None:
    body = {
        **SCENARIO,
        "ops": {"create_entries": [{**SCENARIO["ops"]["create_entries"][0], "amount": 0}]},
    }
    response = client.post("/api/monthly", json=body, headers=_auth())

    assert response.status_code == 400
    assert "amount" in response.json()["error"]
    assert _entry_count(engine) == 0


def test_unknown_category_is_a_client_error(client, engine) -> None:
    body = {
        **SCENARIO,
        "ops": {
            "create_entries": [
                {**SCENARIO["ops"]["create_entries"][0], "category_id": "cat-999"}
            ]
        },
    }
    response = client.post("/api/monthly", json=body, headers=_auth())

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid category_id: cat-999"}
    assert _entry_count(engine) == 0


def test_budget_deletion_in_another_month_is_rejected(client) -> None:
    body = {
        "month_key": "2026-02",
        "expected_version": 0,
        "ops": {"delete_daily_budget_dates": ["2026-03-01"]},
    }
    response = client.post("/api/monthly", json=body, headers=_auth())

    assert response.status_code == 400
    assert "does not match month_key" in response.json()["error"]


def test_read_only_month_is_forbidden(client) -> None:
    body = {**SCENARIO, "month_key": "2025-08", "ops": {}}
    response = client.post("/api/monthly", json=body, headers=_auth())

    assert response.status_code == 403
    assert response.json() == {"error": "This month is read-only."}


def test_invalid_json_is_a_client_error(client) -> None:
    response = client.post(
        "/api/monthly",
        content=b"{not json",
        headers={**_auth(), "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON body."}


def test_missing_credentials_are_unauthorized(client) -> None:
    response = client.post("/api/monthly", json=SCENARIO)

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_oversized_integers_are_client_errors(client, engine) -> None:
    body = {
        **SCENARIO,
        "ops": {"create_entries": [{**SCENARIO["ops"]["create_entries"][0], "amount": 2**63}]},
    }
    response = client.post("/api/monthly", json=body, headers=_auth())

    assert response.status_code == 400
    assert "ops.create_entries[0].amount" in response.json()["error"]
    assert _entry_count(engine) == 0

    response = client.post(
        "/api/monthly", json={**SCENARIO, "expected_version": 2**64}, headers=_auth()
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("expected_version")


def test_storage_fault_is_an_opaque_server_error(client, monkeypatch) -> None:
    def failing_apply(self, batch, inspect):
        raise StorageFault()

    monkeypatch.setattr(services.BatchExecutor, "apply", failing_apply)
    response = client.post("/api/monthly", json=SCENARIO, headers=_auth())

    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error"}


def test_monthly_dataset_after_save(client) -> None:
    client.post("/api/monthly", json=SCENARIO, headers=_auth())

    response = client.get("/api/monthly", params={"month_key": "2026-02"}, headers=_auth())

    assert response.status_code == 200
    data = response.json()
    assert data["month"]["version"] == 1
    assert [c["category_id"] for c in data["categories"]] == ["cat-001"]
    assert len(data["entries"]) == 1
    assert data["entries"][0]["amount"] == 500
    assert data["daily_budgets"] == []


def test_untouched_month_reads_as_empty(client) -> None:
    response = client.get("/api/monthly", params={"month_key": "2026-01"}, headers=_auth())

    assert response.status_code == 200
    assert response.json()["month"] is None


def test_dataset_requires_a_valid_month_key(client) -> None:
    response = client.get("/api/monthly", params={"month_key": "2026-2"}, headers=_auth())

    assert response.status_code == 400
    assert "YYYY-MM" in response.json()["error"]


def test_dev_mode_uses_debug_header(engine) -> None:
    client = _client(engine, dev_mode=True)
    try:
        response = client.post(
            "/api/monthly", json=SCENARIO, headers={DEBUG_USER_HEADER: USER}
        )
        assert response.status_code == 200

        response = client.post(
            "/api/monthly", json=SCENARIO, headers={DEBUG_USER_HEADER: "alice"}
        )
        assert response.status_code == 400
    finally:
        main.app.dependency_overrides.clear()


def test_healthz(client) -> None:
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
