from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from ticketdesk import events
from ticketdesk.identity.resolver import ActorResolver, collect_actor_ids
from ticketdesk.metrics import observe_ledger_append
from ticketdesk.platform.security.context import TenantContext
from ticketdesk.platform.security.errors import BackendError, ValidationError
from ticketdesk.platform.security.repository import eq
from ticketdesk.tickets.activity import ActivityLedger
from ticketdesk.tickets.models import TicketComment
from ticketdesk.tickets.repository import CommentRepository, TicketRepository
from ticketdesk.tickets.schemas import CommentCreate, CommentList, CommentRead


logger = logging.getLogger("ticketdesk.comments")

BODY_MAX_LENGTH = 5000


@dataclass(slots=True)
class CommentLedger:
    comment_repository: CommentRepository = CommentRepository()
    ticket_repository: TicketRepository = TicketRepository()
    activity_ledger: ActivityLedger = field(default_factory=ActivityLedger)
    resolver: ActorResolver = field(default_factory=ActorResolver)

    def add(self, session: Session, ctx: TenantContext, ticket_id: uuid.UUID, dto: CommentCreate) -> CommentRead:
        body = dto.body.strip()
        if not body:
            raise ValidationError("body is required", details={"field": "body"})
        if len(body) > BODY_MAX_LENGTH:
            raise ValidationError(f"body must be at most {BODY_MAX_LENGTH} characters", details={"field": "body"})

        self.ticket_repository.get(session, ctx.org_id, ticket_id)

        def write_comment() -> TicketComment:
            comment = self.comment_repository.insert(
                session,
                ctx.org_id,
                {"ticket_id": ticket_id, "author_profile_id": ctx.profile_id, "body": body},
            )
            observe_ledger_append("comment")
            return comment

        comment, _ = self.activity_ledger.write_with_entry(
            session,
            primary=write_comment,
            entry=lambda written: self.activity_ledger.append(
                session,
                ctx.org_id,
                ticket_id,
                actor_id=ctx.profile_id,
                event_type="comment_added",
                summary="Comment added",
            ),
        )

        logger.info("ticket.comment_added", extra={"ticket_id": str(ticket_id)})
        events.publish_event(
            "ticket.comment_added",
            actor_user_id=ctx.user_id,
            org_id=ctx.org_id,
            payload={"ticket_id": str(ticket_id), "comment_id": str(comment.id)},
        )

        author = None
        if ctx.profile_id is not None:
            # The comment is committed by now; a failed lookup only drops the author.
            try:
                author = self.resolver.resolve(session, ctx.org_id, {ctx.profile_id}).get(ctx.profile_id)
            except BackendError as exc:
                logger.warning(
                    "ticket.comment_author_unresolved",
                    extra={"ticket_id": str(ticket_id), "error": exc.message},
                )
        return CommentRead.model_validate(comment).model_copy(update={"author": author})

    def list(
        self,
        session: Session,
        org_id: uuid.UUID,
        ticket_id: uuid.UUID,
        *,
        limit: int | None = None,
    ) -> CommentList:
        self.ticket_repository.get(session, org_id, ticket_id)
        where = [eq("ticket_id", ticket_id)]
        if limit is None:
            rows = self.comment_repository.query_all(session, org_id, where=where)
        else:
            rows = self.comment_repository.query(session, org_id, where=where, limit=limit)

        warnings: list[str] = []
        try:
            authors = self.resolver.resolve(session, org_id, collect_actor_ids(row.author_profile_id for row in rows))
        except BackendError as exc:
            authors = {}
            warnings.append(f"author lookup failed: {exc.message}")

        items = [
            CommentRead.model_validate(row).model_copy(
                update={"author": authors.get(row.author_profile_id) if row.author_profile_id else None}
            )
            for row in rows
        ]
        return CommentList(items=items, warnings=warnings)


comment_ledger = CommentLedger()
