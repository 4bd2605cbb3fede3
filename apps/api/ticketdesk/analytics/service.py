from __future__ import annotations

import csv
import io
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

from sqlalchemy.orm import Session

from ticketdesk.analytics.aggregator import by_agent, daily_trend, outcome_breakdown, summarize
from ticketdesk.analytics.fallback import LookupStrategy, first_match
from ticketdesk.analytics.models import Call
from ticketdesk.analytics.repository import CallRepository
from ticketdesk.analytics.schemas import (
    AnalyticsRange,
    AnalyticsWindow,
    CallAnalyticsRead,
    CallList,
    CallLookupRead,
    CallRead,
    TicketAnalyticsRange,
    TicketAnalyticsRead,
    TicketAnalyticsWindow,
)
from ticketdesk.analytics.ticket_metrics import OPEN_STATUSES, summarize_tickets
from ticketdesk.core.config import get_settings
from ticketdesk.platform.security.errors import ValidationError
from ticketdesk.platform.security.repository import Condition, eq, gte, in_, lte
from ticketdesk.platform.security.rls import clamp_limit
from ticketdesk.tickets.models import TicketActivity
from ticketdesk.tickets.repository import ActivityRepository, TicketRepository


logger = logging.getLogger("ticketdesk.analytics")

_RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90}
_TICKET_RANGES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}


def resolve_window(
    range_key: AnalyticsRange = "7d",
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    now: datetime | None = None,
) -> AnalyticsWindow:
    days = _RANGE_DAYS.get(range_key)
    if days is None:
        raise ValidationError("range must be one of 7d, 30d, 90d", details={"field": "range"})

    if start is None or end is None:
        today = (now or datetime.now(timezone.utc)).astimezone(timezone.utc).date()
        default_end = datetime.combine(today, time.max, tzinfo=timezone.utc)
        default_start = datetime.combine(today - timedelta(days=days - 1), time.min, tzinfo=timezone.utc)
        start = start or default_start
        end = end or default_end

    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    if start > end:
        raise ValidationError("start must be before end", details={"field": "start"})

    bucket = "week" if (end - start) > timedelta(days=31) else "day"
    return AnalyticsWindow(start=start, end=end, bucket=bucket)


def _parse_uuid(raw: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


@dataclass(slots=True)
class CallAnalyticsService:
    call_repository: CallRepository = CallRepository()
    ticket_repository: TicketRepository = TicketRepository()

    def fetch_window(
        self,
        session: Session,
        org_id: uuid.UUID,
        window: AnalyticsWindow,
        *,
        agent_id: uuid.UUID | None = None,
        outcome: str | None = None,
    ) -> list[Call]:
        where: list[Condition] = [gte("started_at", window.start), lte("started_at", window.end)]
        if agent_id is not None:
            where.append(eq("agent_id", agent_id))
        if outcome:
            where.append(eq("outcome", outcome))

        return self.call_repository.query_all(session, org_id, where=where, order_by="started_at", descending=False)

    def analytics(
        self,
        session: Session,
        org_id: uuid.UUID,
        window: AnalyticsWindow,
        *,
        agent_id: uuid.UUID | None = None,
        outcome: str | None = None,
    ) -> CallAnalyticsRead:
        calls = self.fetch_window(session, org_id, window, agent_id=agent_id, outcome=outcome)
        logger.info("analytics.computed", extra={"entity": "calls", "reason": f"{len(calls)} calls"})
        return CallAnalyticsRead(
            window=window,
            summary=summarize(calls),
            by_agent=by_agent(calls),
            outcomes=outcome_breakdown(calls),
            trend=daily_trend(calls, window.start, window.end, window.bucket),
        )

    def export_csv(self, report: CallAnalyticsRead) -> str:
        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(["metric", "value"])
        writer.writerow(["estimated_savings_usd", f"{report.summary.estimated_savings:.2f}"])
        writer.writerow([])
        writer.writerow(["date", "calls", "avg_duration_seconds", "cost_usd"])
        for point in report.trend:
            writer.writerow([point.date.isoformat(), point.calls, f"{point.avg_duration:.2f}", f"{point.cost:.4f}"])
        writer.writerow([])
        writer.writerow(["agent", "calls", "avg_duration_seconds", "cost_usd"])
        for agent in report.by_agent:
            writer.writerow([agent.agent_name, agent.calls, f"{agent.avg_duration:.2f}", f"{agent.cost:.4f}"])
        writer.writerow([])
        writer.writerow(["outcome", "calls", "percentage"])
        for share in report.outcomes:
            writer.writerow([share.outcome, share.calls, f"{share.percentage:.2f}"])
        return output.getvalue()

    def find_call(self, session: Session, org_id: uuid.UUID, call_key: str) -> CallLookupRead:
        call_uuid = _parse_uuid(call_key)

        def by_id() -> Call | None:
            if call_uuid is None:
                return None
            return self.call_repository.first(session, org_id, where=[eq("id", call_uuid)])

        def by_external_id() -> Call | None:
            return self.call_repository.first(session, org_id, where=[eq("external_call_id", call_key)])

        result = first_match([LookupStrategy("id", by_id), LookupStrategy("external_call_id", by_external_id)])
        return self._lookup_read(result.value, result.strategy, result.warnings)

    def related_call(self, session: Session, org_id: uuid.UUID, ticket_id: uuid.UUID) -> CallLookupRead:
        ticket = self.ticket_repository.get(session, org_id, ticket_id)

        def by_call_id() -> Call | None:
            if ticket.call_id is None:
                return None
            return self.call_repository.first(session, org_id, where=[eq("id", ticket.call_id)])

        def latest_for_lead() -> Call | None:
            if ticket.lead_id is None:
                return None
            return self.call_repository.first(session, org_id, where=[eq("lead_id", ticket.lead_id)])

        result = first_match([LookupStrategy("call_id", by_call_id), LookupStrategy("lead_id", latest_for_lead)])
        return self._lookup_read(result.value, result.strategy, result.warnings)

    def agent_calls(
        self,
        session: Session,
        org_id: uuid.UUID,
        agent_id: uuid.UUID,
        *,
        limit: int | None = None,
    ) -> CallList:
        settings = get_settings()
        bounded = clamp_limit(limit, default=settings.agent_calls_default_limit, ceiling=settings.agent_calls_max_limit)
        rows = self.call_repository.query(session, org_id, where=[eq("agent_id", agent_id)], limit=bounded)
        return CallList(items=[CallRead.model_validate(row) for row in rows])

    @staticmethod
    def _lookup_read(call: Call | None, strategy: str | None, warnings: list[str]) -> CallLookupRead:
        return CallLookupRead(
            call=CallRead.model_validate(call) if call is not None else None,
            strategy=strategy,
            warnings=warnings,
        )


call_analytics_service = CallAnalyticsService()


def resolve_ticket_window(
    range_key: TicketAnalyticsRange = "7d",
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    now: datetime | None = None,
) -> TicketAnalyticsWindow:
    """Rolling window ending now, unless both ``start`` and ``end`` are given."""
    span = _TICKET_RANGES.get(range_key)
    if span is None:
        raise ValidationError("range must be one of 24h, 7d, 30d, 90d", details={"field": "range"})

    if start is None or end is None:
        end = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        start = end - span
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    if start > end:
        raise ValidationError("start must be before end", details={"field": "start"})

    bucket = "hour" if (end - start) <= timedelta(hours=24) else "day"
    return TicketAnalyticsWindow(start=start, end=end, bucket=bucket)


@dataclass(slots=True)
class TicketAnalyticsService:
    ticket_repository: TicketRepository = TicketRepository()
    activity_repository: ActivityRepository = ActivityRepository()

    def _activities_for(self, session: Session, org_id: uuid.UUID, ticket_ids: list[uuid.UUID]) -> list[TicketActivity]:
        # Keep each IN list within the query ceiling.
        chunk = get_settings().query_max_limit
        rows: list[TicketActivity] = []
        for index in range(0, len(ticket_ids), chunk):
            rows.extend(
                self.activity_repository.query_all(
                    session,
                    org_id,
                    where=[in_("ticket_id", ticket_ids[index : index + chunk])],
                    descending=False,
                )
            )
        return rows

    def analytics(
        self,
        session: Session,
        org_id: uuid.UUID,
        window: TicketAnalyticsWindow,
        *,
        priority: str | None = None,
        now: datetime | None = None,
    ) -> TicketAnalyticsRead:
        where: list[Condition] = [gte("created_at", window.start), lte("created_at", window.end)]
        if priority:
            where.append(eq("priority", priority))

        tickets = self.ticket_repository.query_all(session, org_id, where=where, descending=False)
        open_now = self.ticket_repository.count(session, org_id, where=[in_("status", list(OPEN_STATUSES))])
        activities = self._activities_for(session, org_id, [ticket.id for ticket in tickets]) if tickets else []

        logger.info(
            "analytics.tickets_computed",
            extra={"entity": "tickets", "reason": f"{len(tickets)} tickets, {len(activities)} activity rows"},
        )
        return summarize_tickets(
            window,
            tickets,
            activities,
            open_now=open_now,
            now=now or datetime.now(timezone.utc),
        )


ticket_analytics_service = TicketAnalyticsService()
