from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ticketdesk.analytics.schemas import CallLookupRead
from ticketdesk.analytics.service import call_analytics_service
from ticketdesk.core.database import get_db
from ticketdesk.core.rbac import get_tenant_context, require_owner_or_admin
from ticketdesk.platform.security.context import TenantContext
from ticketdesk.tickets.comments import comment_ledger
from ticketdesk.tickets.schemas import (
    ActivityList,
    CommentCreate,
    CommentList,
    CommentRead,
    TicketCreate,
    TicketRead,
    TicketStatus,
    TicketUpdate,
)
from ticketdesk.tickets.service import ticket_service


router = APIRouter(prefix="/api/orgs/{org_id}/tickets", tags=["tickets"])


@router.post("", response_model=TicketRead, status_code=status.HTTP_201_CREATED)
def create_ticket(
    dto: TicketCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_owner_or_admin),
) -> TicketRead:
    return ticket_service.create(db, ctx, dto)


@router.get("", response_model=list[TicketRead])
def list_tickets(
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    limit: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> list[TicketRead]:
    return ticket_service.list(db, ctx.org_id, status=status_filter, limit=limit)


@router.get("/{ticket_id}", response_model=TicketRead)
def get_ticket(
    ticket_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> TicketRead:
    return ticket_service.get(db, ctx.org_id, ticket_id)


@router.patch("/{ticket_id}", response_model=TicketRead)
def update_ticket(
    ticket_id: uuid.UUID,
    dto: TicketUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_owner_or_admin),
) -> TicketRead:
    return ticket_service.update(db, ctx, ticket_id, dto)


@router.get("/{ticket_id}/activity", response_model=ActivityList)
def list_activity(
    ticket_id: uuid.UUID,
    limit: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> ActivityList:
    return ticket_service.activity_ledger.list(db, ctx.org_id, ticket_id, limit=limit)


@router.post("/{ticket_id}/comments", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
def add_comment(
    ticket_id: uuid.UUID,
    dto: CommentCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_owner_or_admin),
) -> CommentRead:
    return comment_ledger.add(db, ctx, ticket_id, dto)


@router.get("/{ticket_id}/comments", response_model=CommentList)
def list_comments(
    ticket_id: uuid.UUID,
    limit: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> CommentList:
    return comment_ledger.list(db, ctx.org_id, ticket_id, limit=limit)


@router.get("/{ticket_id}/call", response_model=CallLookupRead)
def get_related_call(
    ticket_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> CallLookupRead:
    return call_analytics_service.related_call(db, ctx.org_id, ticket_id)
