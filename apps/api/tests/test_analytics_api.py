from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ticketdesk.analytics.models import Call
from ticketdesk.core.auth import AuthUser, get_current_user
from ticketdesk.core.config import get_settings
from ticketdesk.core.database import Base, get_db
from ticketdesk.main import app
from ticketdesk.middleware.rate_limit import reset_rate_limiter


ORG_ID = uuid.UUID("eeeeeeee-eeee-4eee-8eee-eeeeeeeeeeee")


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
def roles() -> list[str]:
    return ["owner"]


@pytest.fixture()
def client(db_session: Session, roles: list[str]) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return AuthUser(sub="user-1", roles=roles, org_id=ORG_ID)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _seed_recent_calls(db_session: Session) -> None:
    started = datetime.now(timezone.utc) - timedelta(hours=1)
    db_session.add_all(
        [
            Call(org_id=ORG_ID, agent_name="A", duration_seconds=60, cost_usd=Decimal("1.0"), outcome="booked", started_at=started),
            Call(org_id=ORG_ID, agent_name="A", duration_seconds=120, cost_usd=Decimal("2.0"), outcome="lost", started_at=started),
            Call(org_id=ORG_ID, agent_name="B", duration_seconds=30, cost_usd=Decimal("0.5"), outcome="booked", started_at=started),
        ]
    )
    db_session.commit()


def _url(suffix: str = "") -> str:
    return f"/api/orgs/{ORG_ID}/analytics/calls{suffix}"


def test_call_analytics_report(client: TestClient, db_session: Session) -> None:
    _seed_recent_calls(db_session)

    response = client.get(_url(), params={"range": "7d"})
    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["total_calls"] == 3
    assert body["window"]["bucket"] == "day"
    assert len(body["trend"]) == 7
    assert [(row["agent_name"], row["calls"], row["avg_duration"], row["cost"]) for row in body["by_agent"]] == [
        ("A", 2, 90.0, 3.0),
        ("B", 1, 30.0, 0.5),
    ]


def test_outcomes_endpoint(client: TestClient, db_session: Session) -> None:
    _seed_recent_calls(db_session)

    shares = client.get(_url("/outcomes")).json()
    assert {share["outcome"]: share["calls"] for share in shares} == {"booked": 2, "lost": 1}
    assert sum(share["percentage"] for share in shares) == pytest.approx(100.0)


def test_empty_window_is_not_an_error(client: TestClient) -> None:
    response = client.get(_url("/by-agent"), params={"range": "30d"})
    assert response.status_code == 200
    assert response.json() == []


def test_export_is_csv(client: TestClient, db_session: Session) -> None:
    _seed_recent_calls(db_session)

    response = client.get(_url("/export"))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    assert "estimated_savings_usd" in response.text


def test_invalid_range_is_rejected(client: TestClient) -> None:
    response = client.get(_url(), params={"range": "1y"})
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_inverted_window_is_rejected(client: TestClient) -> None:
    response = client.get(_url(), params={"start": "2026-03-05T00:00:00Z", "end": "2026-03-01T00:00:00Z"})
    assert response.status_code == 422


@pytest.mark.parametrize("roles", [["member"]])
def test_members_cannot_read_analytics(client: TestClient) -> None:
    response = client.get(_url())
    assert response.status_code == 403
