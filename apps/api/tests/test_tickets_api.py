from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ticketdesk import events
from ticketdesk.analytics.models import Call
from ticketdesk.core.auth import AuthUser, get_current_user
from ticketdesk.core.config import get_settings
from ticketdesk.core.database import Base, get_db
from ticketdesk.identity.models import Profile
from ticketdesk.main import app
from ticketdesk.middleware.rate_limit import reset_rate_limiter


ORG_ID = uuid.UUID("88888888-8888-8888-8888-888888888888")
OTHER_ORG_ID = uuid.UUID("99999999-9999-9999-9999-999999999999")
PROFILE_ID = uuid.UUID("aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa")


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
    events.published_events.clear()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()
    events.published_events.clear()


@pytest.fixture()
def roles() -> list[str]:
    return ["admin"]


@pytest.fixture()
def client(db_session: Session, roles: list[str]) -> Generator[TestClient, None, None]:
    db_session.add(Profile(id=PROFILE_ID, org_id=ORG_ID, full_name="Dana Agent", email="dana@example.com", role="admin"))
    db_session.commit()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return AuthUser(sub="user-1", roles=roles, org_id=ORG_ID, profile_id=PROFILE_ID)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _tickets_url(org_id: uuid.UUID = ORG_ID) -> str:
    return f"/api/orgs/{org_id}/tickets"


def _create_ticket(client: TestClient, **overrides) -> dict:  # type: ignore[no-untyped-def]
    response = client.post(_tickets_url(), json={"subject": "Billing issue", "priority": "high", **overrides})
    assert response.status_code == 201
    return response.json()


def test_ticket_lifecycle(client: TestClient) -> None:
    ticket = _create_ticket(client, requester_email="pat@example.com")
    assert ticket["status"] == "open"
    assert ticket["org_id"] == str(ORG_ID)

    resolved = client.patch(
        f"{_tickets_url()}/{ticket['id']}", json={"status": "resolved", "source": "primary_action"}
    )
    assert resolved.status_code == 200
    assert resolved.json()["status"] == "resolved"

    comment = client.post(f"{_tickets_url()}/{ticket['id']}/comments", json={"body": "Refund issued."})
    assert comment.status_code == 201
    assert comment.json()["author"]["full_name"] == "Dana Agent"

    activity = client.get(f"{_tickets_url()}/{ticket['id']}/activity")
    assert activity.status_code == 200
    body = activity.json()
    assert body["warnings"] == []
    assert {item["event_type"] for item in body["items"]} == {"created", "resolved", "comment_added"}
    resolved_entry = next(item for item in body["items"] if item["event_type"] == "resolved")
    assert resolved_entry["diff"] == {"status": {"before": "open", "after": "resolved"}}
    assert resolved_entry["actor"]["id"] == str(PROFILE_ID)

    comments = client.get(f"{_tickets_url()}/{ticket['id']}/comments")
    assert [item["body"] for item in comments.json()["items"]] == ["Refund issued."]

    listed = client.get(_tickets_url(), params={"status": "resolved"})
    assert [item["id"] for item in listed.json()] == [ticket["id"]]


def test_blank_subject_is_rejected_with_envelope(client: TestClient) -> None:
    response = client.post(_tickets_url(), json={"subject": "   "}, headers={"X-Correlation-Id": "corr-val-1"})
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert body["correlation_id"] == "corr-val-1"


def test_unknown_status_is_rejected(client: TestClient) -> None:
    ticket = _create_ticket(client)
    response = client.patch(f"{_tickets_url()}/{ticket['id']}", json={"status": "archived"})
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_missing_ticket_returns_not_found_envelope(client: TestClient) -> None:
    response = client.get(f"{_tickets_url()}/{uuid.uuid4()}", headers={"X-Correlation-Id": "corr-404"})
    assert response.status_code == 404
    body = response.json()
    assert body["code"] == "not_found"
    assert body["details"]["entity"] == "tickets"
    assert body["correlation_id"] == "corr-404"
    assert response.headers["x-correlation-id"] == "corr-404"


def test_other_org_is_forbidden(client: TestClient) -> None:
    response = client.get(_tickets_url(OTHER_ORG_ID))
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


@pytest.mark.parametrize("roles", [["member"]])
def test_members_can_read_but_not_mutate(client: TestClient) -> None:
    assert client.get(_tickets_url()).status_code == 200

    response = client.post(_tickets_url(), json={"subject": "Not allowed"})
    assert response.status_code == 403
    assert response.json()["message"] == "only owners and admins can perform this action"


def test_related_call_lookup(client: TestClient, db_session: Session) -> None:
    lead_id = uuid.uuid4()
    call = Call(org_id=ORG_ID, lead_id=lead_id, agent_name="A", duration_seconds=42)
    db_session.add(call)
    db_session.commit()

    ticket = _create_ticket(client, lead_id=str(lead_id))
    response = client.get(f"{_tickets_url()}/{ticket['id']}/call")
    assert response.status_code == 200
    body = response.json()
    assert body["call"]["id"] == str(call.id)
    assert body["strategy"] == "lead_id"


def test_mutation_events_carry_request_correlation_id(client: TestClient) -> None:
    response = client.post(_tickets_url(), json={"subject": "Traced"}, headers={"X-Correlation-Id": "corr-event-1"})
    assert response.status_code == 201

    created = [item for item in events.published_events if item["event_type"] == "ticket.created"]
    assert created
    assert created[-1]["correlation_id"] == "corr-event-1"
    assert created[-1]["org_id"] == str(ORG_ID)


def test_anonymous_caller_is_unauthorized(db_session: Session) -> None:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as client:
            response = client.get(_tickets_url())
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"
    assert response.headers["www-authenticate"] == "Bearer"


def test_bearer_token_claims_bind_org_membership(db_session: Session) -> None:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    token = jwt.encode(
        {"sub": "user-7", "org_id": str(ORG_ID), "roles": ["owner"], "profile_id": str(PROFILE_ID)},
        get_settings().jwt_secret,
        algorithm=get_settings().jwt_algorithm,
    )
    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as client:
            own = client.post(_tickets_url(), json={"subject": "From token"}, headers={"Authorization": f"Bearer {token}"})
            foreign = client.get(_tickets_url(OTHER_ORG_ID), headers={"Authorization": f"Bearer {token}"})
            garbage = client.get(_tickets_url(), headers={"Authorization": "Bearer not-a-jwt"})
    finally:
        app.dependency_overrides.clear()

    assert own.status_code == 201
    assert foreign.status_code == 403
    assert garbage.status_code == 401
