from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ticketdesk.context import reset_correlation_id, reset_org_id, set_correlation_id, set_org_id
from ticketdesk.core.auth import AuthUser, get_current_user
from ticketdesk.core.config import get_settings
from ticketdesk.core.database import Base, get_db
from ticketdesk.logging import CorrelationIdFilter, JsonLogFormatter
from ticketdesk.main import app
from ticketdesk.middleware.rate_limit import reset_rate_limiter


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def org_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def client(db_session: Session, org_id: uuid.UUID) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return AuthUser(sub="user-1", roles=["admin"], org_id=org_id)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_logs_include_correlation_id_for_http(
    client: TestClient, org_id: uuid.UUID, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO)

    response = client.get(f"/api/orgs/{org_id}/tickets/{uuid.uuid4()}", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [
        record for record in caplog.records if record.name == "ticketdesk.request" and record.getMessage() == "http.request"
    ]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/orgs/{id}/tickets/{id}"
        and getattr(record, "status_code", None) == 404
        and getattr(record, "org_id", None) == str(org_id)
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_ticket_mutation_logs_carry_ticket_and_org(
    client: TestClient, org_id: uuid.UUID, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO)

    created = client.post(f"/api/orgs/{org_id}/tickets", json={"subject": "Logged"}, headers={"X-Correlation-Id": "abc-456"})
    assert created.status_code == 201
    ticket_id = created.json()["id"]

    updated = client.patch(
        f"/api/orgs/{org_id}/tickets/{ticket_id}", json={"priority": "urgent"}, headers={"X-Correlation-Id": "abc-456"}
    )
    assert updated.status_code == 200

    ticket_records = [record for record in caplog.records if record.name == "ticketdesk.tickets"]
    assert any(
        record.getMessage() == "ticket.updated"
        and getattr(record, "ticket_id", None) == ticket_id
        and getattr(record, "event_type", None) == "priority_changed"
        and getattr(record, "changed_fields", None) == ["priority"]
        and getattr(record, "correlation_id", None) == "abc-456"
        for record in ticket_records
    )


def test_json_formatter_keeps_known_fields_only() -> None:
    correlation_token = set_correlation_id("fmt-1")
    org_token = set_org_id("org-fmt")
    try:
        record = logging.LogRecord("ticketdesk.test", logging.INFO, __file__, 1, "ticket.updated", None, None)
        record.ticket_id = "t-1"
        record.password = "never logged"
        CorrelationIdFilter().filter(record)
        payload = json.loads(JsonLogFormatter().format(record))
    finally:
        reset_org_id(org_token)
        reset_correlation_id(correlation_token)

    assert payload["msg"] == "ticket.updated"
    assert payload["correlation_id"] == "fmt-1"
    assert payload["org_id"] == "org-fmt"
    assert payload["fields"] == {"ticket_id": "t-1"}
