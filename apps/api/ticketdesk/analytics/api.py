from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ticketdesk.analytics.schemas import (
    AgentStats,
    AnalyticsRange,
    CallAnalyticsRead,
    OutcomeShare,
    TicketAnalyticsRange,
    TicketAnalyticsRead,
)
from ticketdesk.analytics.service import (
    call_analytics_service,
    resolve_ticket_window,
    resolve_window,
    ticket_analytics_service,
)
from ticketdesk.core.database import get_db
from ticketdesk.core.rbac import require_owner_or_admin
from ticketdesk.platform.security.context import TenantContext
from ticketdesk.tickets.schemas import TicketPriority


router = APIRouter(prefix="/api/orgs/{org_id}/analytics/calls", tags=["analytics"])
ticket_router = APIRouter(prefix="/api/orgs/{org_id}/analytics/tickets", tags=["analytics"])


def _report(
    db: Session,
    ctx: TenantContext,
    range_key: AnalyticsRange,
    start: datetime | None,
    end: datetime | None,
    agent_id: uuid.UUID | None,
    outcome: str | None,
) -> CallAnalyticsRead:
    window = resolve_window(range_key, start=start, end=end)
    return call_analytics_service.analytics(db, ctx.org_id, window, agent_id=agent_id, outcome=outcome)


@router.get("", response_model=CallAnalyticsRead)
def get_call_analytics(
    range_key: AnalyticsRange = Query(default="7d", alias="range"),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    agent_id: uuid.UUID | None = Query(default=None),
    outcome: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_owner_or_admin),
) -> CallAnalyticsRead:
    return _report(db, ctx, range_key, start, end, agent_id, outcome)


@router.get("/by-agent", response_model=list[AgentStats])
def get_calls_by_agent(
    range_key: AnalyticsRange = Query(default="7d", alias="range"),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    agent_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_owner_or_admin),
) -> list[AgentStats]:
    return _report(db, ctx, range_key, start, end, agent_id, None).by_agent


@router.get("/outcomes", response_model=list[OutcomeShare])
def get_outcome_breakdown(
    range_key: AnalyticsRange = Query(default="7d", alias="range"),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    agent_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_owner_or_admin),
) -> list[OutcomeShare]:
    return _report(db, ctx, range_key, start, end, agent_id, None).outcomes


@router.get("/export")
def export_call_analytics(
    range_key: AnalyticsRange = Query(default="7d", alias="range"),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    agent_id: uuid.UUID | None = Query(default=None),
    outcome: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_owner_or_admin),
) -> Response:
    report = _report(db, ctx, range_key, start, end, agent_id, outcome)
    filename = f"analytics-{range_key}-{report.window.end.date().isoformat()}.csv"
    return Response(
        content=call_analytics_service.export_csv(report),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@ticket_router.get("", response_model=TicketAnalyticsRead)
def get_ticket_analytics(
    range_key: TicketAnalyticsRange = Query(default="7d", alias="range"),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    priority: TicketPriority | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_owner_or_admin),
) -> TicketAnalyticsRead:
    window = resolve_ticket_window(range_key, start=start, end=end)
    return ticket_analytics_service.analytics(db, ctx.org_id, window, priority=priority)
