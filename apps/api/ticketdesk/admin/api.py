from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ticketdesk.analytics.schemas import CallList, CallLookupRead
from ticketdesk.analytics.service import call_analytics_service
from ticketdesk.context import set_org_id
from ticketdesk.core.database import get_db
from ticketdesk.platform.security.errors import NotFoundError
from ticketdesk.tickets.schemas import TicketRead, TicketStatus
from ticketdesk.tickets.service import ticket_service


# Credentials for these routes are checked by AdminBasicAuthMiddleware before routing.
router = APIRouter(prefix="/api/admin", tags=["admin"])


def get_admin_org(org: uuid.UUID = Query()) -> uuid.UUID:
    set_org_id(str(org))
    return org


@router.get("/tickets", response_model=list[TicketRead])
def list_org_tickets(
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    limit: int | None = Query(default=None),
    org_id: uuid.UUID = Depends(get_admin_org),
    db: Session = Depends(get_db),
) -> list[TicketRead]:
    return ticket_service.list(db, org_id, status=status_filter, limit=limit)


@router.get("/calls/{call_key}", response_model=CallLookupRead)
def get_call(
    call_key: str,
    org_id: uuid.UUID = Depends(get_admin_org),
    db: Session = Depends(get_db),
) -> CallLookupRead:
    result = call_analytics_service.find_call(db, org_id, call_key)
    if result.call is None:
        raise NotFoundError("calls", call_key)
    return result


@router.get("/agents/{agent_id}/calls", response_model=CallList)
def list_agent_calls(
    agent_id: uuid.UUID,
    limit: int | None = Query(default=None),
    org_id: uuid.UUID = Depends(get_admin_org),
    db: Session = Depends(get_db),
) -> CallList:
    return call_analytics_service.agent_calls(db, org_id, agent_id, limit=limit)
