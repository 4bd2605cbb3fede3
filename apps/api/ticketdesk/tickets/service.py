from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from ticketdesk import events
from ticketdesk.metrics import observe_ticket_mutation
from ticketdesk.platform.security.context import TenantContext
from ticketdesk.platform.security.errors import ValidationError
from ticketdesk.platform.security.repository import eq
from ticketdesk.tickets.activity import ActivityLedger
from ticketdesk.tickets.models import Ticket
from ticketdesk.tickets.repository import TicketRepository
from ticketdesk.tickets.schemas import FieldChange, TicketCreate, TicketDiff, TicketRead, TicketUpdate


logger = logging.getLogger("ticketdesk.tickets")

SUBJECT_MAX_LENGTH = 500
TRACKED_FIELDS = ("subject", "description", "status", "priority")
_REOPENABLE_FROM = {"resolved", "closed"}


def _clean_subject(value: str | None) -> str:
    subject = (value or "").strip()
    if not subject:
        raise ValidationError("subject is required", details={"field": "subject"})
    if len(subject) > SUBJECT_MAX_LENGTH:
        raise ValidationError(f"subject must be at most {SUBJECT_MAX_LENGTH} characters", details={"field": "subject"})
    return subject


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def compute_diff(ticket: Ticket, changes: dict[str, Any]) -> TicketDiff:
    """Before/after pairs for the tracked fields whose value actually moves."""
    diff: TicketDiff = {}
    for name in TRACKED_FIELDS:
        if name not in changes:
            continue
        before = getattr(ticket, name)
        after = changes[name]
        if before != after:
            diff[name] = FieldChange(before=before, after=after)
    return diff


def describe_change(diff: TicketDiff, source: str) -> tuple[str, str]:
    changed = set(diff)
    if changed == {"status"}:
        before = diff["status"].before
        after = str(diff["status"].after)
        if source == "primary_action" and after == "resolved":
            return "resolved", "Ticket resolved"
        if source == "primary_action" and before in _REOPENABLE_FROM and after not in _REOPENABLE_FROM:
            return "reopened", "Ticket reopened"
        return "status_changed", f"Status changed to {after.title()}"
    if changed == {"priority"}:
        return "priority_changed", f"Priority changed to {str(diff['priority'].after).title()}"
    return "updated", f"Updated {', '.join(sorted(changed))}"


@dataclass(slots=True)
class TicketService:
    ticket_repository: TicketRepository = TicketRepository()
    activity_ledger: ActivityLedger = field(default_factory=ActivityLedger)

    def create(self, session: Session, ctx: TenantContext, dto: TicketCreate) -> TicketRead:
        values = {
            "subject": _clean_subject(dto.subject),
            "description": _clean_optional(dto.description),
            "status": dto.status or "open",
            "priority": dto.priority or "normal",
            "lead_id": dto.lead_id,
            "call_id": dto.call_id,
            "requester_name": _clean_optional(dto.requester_name),
            "requester_email": _clean_optional(dto.requester_email),
            "requester_phone": _clean_optional(dto.requester_phone),
        }

        ticket, _ = self.activity_ledger.write_with_entry(
            session,
            primary=lambda: self.ticket_repository.insert(session, ctx.org_id, values),
            entry=lambda written: self.activity_ledger.append(
                session,
                ctx.org_id,
                written.id,
                actor_id=ctx.profile_id,
                event_type="created",
                summary="Ticket created",
            ),
        )

        observe_ticket_mutation("created")
        logger.info("ticket.created", extra={"ticket_id": str(ticket.id), "event_type": "created"})
        self._publish(ctx, "ticket.created", ticket, {"status": ticket.status, "priority": ticket.priority})
        return TicketRead.model_validate(ticket)

    def list(
        self,
        session: Session,
        org_id: uuid.UUID,
        *,
        status: str | None = None,
        limit: int | None = None,
    ) -> list[TicketRead]:
        where = [eq("status", status)] if status else []
        rows = self.ticket_repository.query(session, org_id, where=where, limit=limit)
        return [TicketRead.model_validate(row) for row in rows]

    def get(self, session: Session, org_id: uuid.UUID, ticket_id: uuid.UUID) -> TicketRead:
        return TicketRead.model_validate(self.ticket_repository.get(session, org_id, ticket_id))

    def update(self, session: Session, ctx: TenantContext, ticket_id: uuid.UUID, dto: TicketUpdate) -> TicketRead:
        patch = dto.model_dump(exclude_unset=True)
        source = patch.pop("source", "dropdown")

        if "subject" in patch:
            patch["subject"] = _clean_subject(patch["subject"])
        if "description" in patch:
            patch["description"] = _clean_optional(patch["description"])
        for name in ("status", "priority"):
            if name in patch and patch[name] is None:
                raise ValidationError(f"{name} cannot be null", details={"field": name})

        # The row stays locked until commit so the diff's before values are current.
        ticket = self.ticket_repository.get(session, ctx.org_id, ticket_id, for_update=True)
        diff = compute_diff(ticket, patch)
        if not diff:
            logger.info("ticket.update_noop", extra={"ticket_id": str(ticket_id)})
            unchanged = TicketRead.model_validate(ticket)
            session.rollback()
            return unchanged

        event_type, summary = describe_change(diff, source)
        changes = {name: change.after for name, change in diff.items()}
        updated, _ = self.activity_ledger.write_with_entry(
            session,
            primary=lambda: self.ticket_repository.update(session, ctx.org_id, ticket, changes),
            entry=lambda written: self.activity_ledger.append(
                session,
                ctx.org_id,
                written.id,
                actor_id=ctx.profile_id,
                event_type=event_type,
                summary=summary,
                diff=diff,
            ),
            diff=diff,
        )

        observe_ticket_mutation(event_type)
        logger.info(
            "ticket.updated",
            extra={"ticket_id": str(ticket_id), "event_type": event_type, "changed_fields": sorted(diff)},
        )
        self._publish(ctx, "ticket.updated", updated, {"event_type": event_type, "changed_fields": sorted(diff)})
        return TicketRead.model_validate(updated)

    @staticmethod
    def _publish(ctx: TenantContext, event_type: str, ticket: Ticket, payload: dict[str, Any]) -> None:
        events.publish_event(
            event_type,
            actor_user_id=ctx.user_id,
            org_id=ctx.org_id,
            payload={"ticket_id": str(ticket.id), **payload},
        )


ticket_service = TicketService()
