from __future__ import annotations

import csv
import io
import uuid
from collections.abc import Generator
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ticketdesk.analytics.aggregator import CallSample, by_agent, daily_trend, outcome_breakdown, summarize, week_start
from ticketdesk.analytics.fallback import LookupStrategy, first_match
from ticketdesk.analytics.models import Call
from ticketdesk.analytics.repository import CallRepository
from ticketdesk.analytics.service import call_analytics_service, resolve_window
from ticketdesk.core.config import get_settings
from ticketdesk.core.database import Base
from ticketdesk.platform.security.context import TenantContext
from ticketdesk.platform.security.errors import BackendError, ValidationError
from ticketdesk.tickets.schemas import TicketCreate
from ticketdesk.tickets.service import ticket_service


ORG_ID = uuid.UUID("66666666-6666-6666-6666-666666666666")
OTHER_ORG_ID = uuid.UUID("77777777-7777-7777-7777-777777777777")
NOW = datetime(2026, 3, 12, 15, 0, tzinfo=timezone.utc)


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
def reset_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _call(session: Session, org_id: uuid.UUID = ORG_ID, **values) -> Call:  # type: ignore[no-untyped-def]
    row = Call(org_id=org_id, **values)
    session.add(row)
    session.commit()
    return row


def _ab_samples() -> list[CallSample]:
    return [
        CallSample(agent_name="A", duration_seconds=60, cost_usd=Decimal("1.0"), outcome="booked"),
        CallSample(agent_name="A", duration_seconds=120, cost_usd=Decimal("2.0"), outcome="no_answer"),
        CallSample(agent_name="B", duration_seconds=30, cost_usd=Decimal("0.5"), outcome="booked"),
    ]


def test_by_agent_groups_and_orders() -> None:
    rows = by_agent(_ab_samples())

    assert [row.agent_name for row in rows] == ["A", "B"]
    assert (rows[0].calls, rows[0].avg_duration, rows[0].cost) == (2, 90.0, 3.0)
    assert (rows[1].calls, rows[1].avg_duration, rows[1].cost) == (1, 30.0, 0.5)


def test_by_agent_labels_missing_names() -> None:
    rows = by_agent([CallSample(agent_name=None, duration_seconds=10), CallSample(agent_name="  ", duration_seconds=20)])
    assert len(rows) == 1
    assert rows[0].agent_name == "Unassigned"
    assert rows[0].calls == 2
    assert rows[0].cost == 0.0


def test_outcome_percentages_sum_to_one_hundred() -> None:
    samples = _ab_samples() + [CallSample(outcome=None), CallSample(outcome="voicemail"), CallSample(outcome="booked")]
    shares = outcome_breakdown(samples)

    assert sum(share.percentage for share in shares) == pytest.approx(100.0)
    assert shares[0].outcome == "booked"
    assert shares[0].calls == 3
    assert shares[0].percentage == pytest.approx(50.0)
    assert "Unclassified" in {share.outcome for share in shares}


def test_empty_window_yields_empty_aggregates() -> None:
    assert by_agent([]) == []
    assert outcome_breakdown([]) == []
    summary = summarize([])
    assert summary.total_calls == 0
    assert summary.avg_duration == 0.0
    assert summary.estimated_savings == 0.0


def test_summary_estimates_savings_against_human_rate() -> None:
    summary = summarize([CallSample(duration_seconds=3600, cost_usd=Decimal("5.0"))])
    assert summary.total_cost == 5.0
    assert summary.estimated_savings == pytest.approx(20.0)


def test_daily_trend_is_zero_filled() -> None:
    start = datetime(2026, 3, 1, tzinfo=timezone.utc)
    end = datetime(2026, 3, 3, 23, 59, tzinfo=timezone.utc)
    samples = [
        CallSample(duration_seconds=60, cost_usd=1, started_at=datetime(2026, 3, 1, 9, tzinfo=timezone.utc)),
        CallSample(duration_seconds=120, cost_usd=1, started_at=datetime(2026, 3, 3, 9, tzinfo=timezone.utc)),
        CallSample(duration_seconds=999, started_at=datetime(2026, 4, 1, tzinfo=timezone.utc)),
    ]

    points = daily_trend(samples, start, end)

    assert [point.date for point in points] == [date(2026, 3, 1), date(2026, 3, 2), date(2026, 3, 3)]
    assert [point.calls for point in points] == [1, 0, 1]
    assert points[1].avg_duration == 0.0


def test_weekly_trend_buckets_on_monday() -> None:
    assert week_start(date(2026, 3, 12)) == date(2026, 3, 9)
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    end = datetime(2026, 3, 12, tzinfo=timezone.utc)
    points = daily_trend([], start, end, "week")
    assert points[0].date == date(2025, 12, 29)
    assert all(point.date.weekday() == 0 for point in points)


def test_resolve_window_defaults_and_validation() -> None:
    window = resolve_window("7d", now=NOW)
    assert window.start == datetime(2026, 3, 6, tzinfo=timezone.utc)
    assert window.end.date() == date(2026, 3, 12)
    assert window.bucket == "day"

    assert resolve_window("90d", now=NOW).bucket == "week"

    with pytest.raises(ValidationError):
        resolve_window("1y", now=NOW)  # type: ignore[arg-type]
    with pytest.raises(ValidationError):
        resolve_window(start=datetime(2026, 3, 2, tzinfo=timezone.utc), end=datetime(2026, 3, 1, tzinfo=timezone.utc))


def test_first_match_keeps_first_hit_and_collects_warnings() -> None:
    def broken() -> str | None:
        raise BackendError("timeout")

    result = first_match(
        [LookupStrategy("broken", broken), LookupStrategy("empty", lambda: None), LookupStrategy("hit", lambda: "x")]
    )
    assert result.value == "x"
    assert result.strategy == "hit"
    assert result.warnings == ["broken: timeout"]


def test_first_match_miss_without_errors_is_empty() -> None:
    result = first_match([LookupStrategy("a", lambda: None), LookupStrategy("b", lambda: [])])
    assert result.value is None
    assert result.strategy is None
    assert result.warnings == []


def test_first_match_raises_when_every_strategy_failed() -> None:
    def broken() -> str | None:
        raise BackendError("down")

    with pytest.raises(BackendError) as exc_info:
        first_match([LookupStrategy("a", broken), LookupStrategy("b", lambda: None)])
    assert exc_info.value.details == {"warnings": ["a: down"]}


def test_service_analytics_scoped_to_org_and_window(db_session: Session) -> None:
    inside = datetime(2026, 3, 10, 10, tzinfo=timezone.utc)
    _call(db_session, agent_name="A", duration_seconds=60, cost_usd=Decimal("1.0"), outcome="booked", started_at=inside)
    _call(db_session, agent_name="A", duration_seconds=120, cost_usd=Decimal("2.0"), outcome="booked", started_at=inside)
    _call(db_session, agent_name="B", duration_seconds=30, cost_usd=Decimal("0.5"), outcome="lost", started_at=inside)
    _call(db_session, agent_name="A", duration_seconds=600, started_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    _call(db_session, OTHER_ORG_ID, agent_name="C", duration_seconds=10, started_at=inside)

    report = call_analytics_service.analytics(db_session, ORG_ID, resolve_window("7d", now=NOW))

    assert report.summary.total_calls == 3
    assert [(row.agent_name, row.calls, row.avg_duration) for row in report.by_agent] == [("A", 2, 90.0), ("B", 1, 30.0)]
    assert len(report.trend) == 7
    assert sum(point.calls for point in report.trend) == 3


def test_service_fetch_window_pages_past_query_cap(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUERY_MAX_LIMIT", "2")
    get_settings.cache_clear()
    for minute in range(5):
        _call(db_session, duration_seconds=10, started_at=datetime(2026, 3, 11, 8, minute, tzinfo=timezone.utc))

    rows = call_analytics_service.fetch_window(db_session, ORG_ID, resolve_window("7d", now=NOW))
    assert len(rows) == 5


def test_export_csv_contains_sections(db_session: Session) -> None:
    _call(db_session, agent_name="A", duration_seconds=60, cost_usd=Decimal("1.0"), outcome="booked",
          started_at=datetime(2026, 3, 10, tzinfo=timezone.utc))
    report = call_analytics_service.analytics(db_session, ORG_ID, resolve_window("7d", now=NOW))

    rows = list(csv.reader(io.StringIO(call_analytics_service.export_csv(report))))
    assert rows[0] == ["metric", "value"]
    assert ["agent", "calls", "avg_duration_seconds", "cost_usd"] in rows
    assert ["A", "1", "60.00", "1.0000"] in rows
    assert ["booked", "1", "100.00"] in rows


def test_find_call_falls_back_to_external_id(db_session: Session) -> None:
    call = _call(db_session, external_call_id="ext-42")

    by_external = call_analytics_service.find_call(db_session, ORG_ID, "ext-42")
    assert by_external.call.id == call.id
    assert by_external.strategy == "external_call_id"

    by_id = call_analytics_service.find_call(db_session, ORG_ID, str(call.id))
    assert by_id.strategy == "id"

    missing = call_analytics_service.find_call(db_session, OTHER_ORG_ID, "ext-42")
    assert missing.call is None


def test_find_call_reports_warning_from_failed_primary(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    call_id = uuid.uuid4()
    _call(db_session, id=call_id, external_call_id=str(call_id))
    original_first = CallRepository.first

    def flaky_first(self, session, org_id, *, where=(), order_by="created_at"):  # type: ignore[no-untyped-def]
        if where[0].column == "id":
            raise BackendError("calls query failed")
        return original_first(self, session, org_id, where=where, order_by=order_by)

    monkeypatch.setattr(CallRepository, "first", flaky_first)

    result = call_analytics_service.find_call(db_session, ORG_ID, str(call_id))
    assert result.call.id == call_id
    assert result.strategy == "external_call_id"
    assert result.warnings == ["id: calls query failed"]

    # Nothing left to fall back to, so the primary failure is fatal.
    with pytest.raises(BackendError):
        call_analytics_service.find_call(db_session, ORG_ID, str(uuid.uuid4()))


def test_related_call_prefers_call_id_then_latest_for_lead(db_session: Session) -> None:
    lead_id = uuid.uuid4()
    older = _call(db_session, lead_id=lead_id, created_at=datetime(2026, 3, 1, tzinfo=timezone.utc))
    newer = _call(db_session, lead_id=lead_id, created_at=datetime(2026, 3, 5, tzinfo=timezone.utc))
    ctx = TenantContext(user_id="u", org_id=ORG_ID, roles=["admin"])

    linked = ticket_service.create(db_session, ctx, TicketCreate(subject="Linked", call_id=older.id, lead_id=lead_id))
    by_lead = ticket_service.create(db_session, ctx, TicketCreate(subject="Lead only", lead_id=lead_id))
    unlinked = ticket_service.create(db_session, ctx, TicketCreate(subject="Nothing"))

    first = call_analytics_service.related_call(db_session, ORG_ID, linked.id)
    assert (first.call.id, first.strategy) == (older.id, "call_id")

    second = call_analytics_service.related_call(db_session, ORG_ID, by_lead.id)
    assert (second.call.id, second.strategy) == (newer.id, "lead_id")

    none = call_analytics_service.related_call(db_session, ORG_ID, unlinked.id)
    assert none.call is None
    assert none.warnings == []


def test_agent_calls_is_clamped(db_session: Session) -> None:
    agent_id = uuid.uuid4()
    for _ in range(12):
        _call(db_session, agent_id=agent_id)
    _call(db_session, OTHER_ORG_ID, agent_id=agent_id)

    assert len(call_analytics_service.agent_calls(db_session, ORG_ID, agent_id).items) == 10
    assert len(call_analytics_service.agent_calls(db_session, ORG_ID, agent_id, limit=500).items) == 12
    assert len(call_analytics_service.agent_calls(db_session, OTHER_ORG_ID, agent_id).items) == 1
