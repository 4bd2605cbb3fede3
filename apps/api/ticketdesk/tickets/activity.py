from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ticketdesk.core.config import get_settings
from ticketdesk.identity.resolver import ActorResolver, collect_actor_ids
from ticketdesk.metrics import observe_ledger_append, observe_partial_write
from ticketdesk.platform.security.errors import BackendError, PartialWriteError, TicketDeskError
from ticketdesk.platform.security.repository import eq
from ticketdesk.tickets.models import TicketActivity
from ticketdesk.tickets.repository import ActivityRepository, TicketRepository
from ticketdesk.tickets.schemas import ActivityList, ActivityRead, TicketDiff


logger = logging.getLogger("ticketdesk.activity")

SUMMARY_MAX_LENGTH = 500

T = TypeVar("T")


def serialize_diff(diff: TicketDiff | None) -> dict[str, Any] | None:
    if not diff:
        return None
    return {name: change.model_dump(mode="json") for name, change in diff.items()}


def _ticket_id_of(row: Any) -> uuid.UUID:
    return getattr(row, "ticket_id", None) or row.id


@dataclass(slots=True)
class ActivityLedger:
    activity_repository: ActivityRepository = ActivityRepository()
    ticket_repository: TicketRepository = TicketRepository()
    resolver: ActorResolver = field(default_factory=ActorResolver)

    def append(
        self,
        session: Session,
        org_id: uuid.UUID,
        ticket_id: uuid.UUID,
        *,
        actor_id: uuid.UUID | None,
        event_type: str,
        summary: str,
        diff: TicketDiff | None = None,
    ) -> TicketActivity:
        row = self.activity_repository.insert(
            session,
            org_id,
            {
                "ticket_id": ticket_id,
                "actor_profile_id": actor_id,
                "event_type": event_type,
                "summary": summary.strip()[:SUMMARY_MAX_LENGTH],
                "diff": serialize_diff(diff),
            },
        )
        observe_ledger_append("activity")
        return row

    def write_with_entry(
        self,
        session: Session,
        *,
        primary: Callable[[], T],
        entry: Callable[[T], TicketActivity],
        diff: TicketDiff | None = None,
    ) -> tuple[T, TicketActivity]:
        """Persist a mutation together with its activity row.

        In ``transactional`` mode both rows share one commit. In ``sequential``
        mode the mutation commits first and the caller is only answered after
        the activity row commits; a failure in between raises PartialWriteError.
        """
        write_mode = get_settings().ledger_write_mode.lower()
        if write_mode == "sequential":
            result = self._commit(session, primary)
            try:
                activity = self._commit(session, lambda: entry(result))
            except BackendError as exc:
                ticket_id = _ticket_id_of(result)
                observe_partial_write()
                logger.error(
                    "ledger.partial_write",
                    extra={"ticket_id": str(ticket_id), "write_mode": write_mode, "error": exc.message},
                )
                raise PartialWriteError(ticket_id, serialize_diff(diff), exc.message) from exc
            return result, activity

        def both() -> tuple[T, TicketActivity]:
            written = primary()
            return written, entry(written)

        return self._commit(session, both)

    @staticmethod
    def _commit(session: Session, write: Callable[[], T]) -> T:
        try:
            result = write()
            session.commit()
        except TicketDeskError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("ledger.commit_failed", extra={"error": str(exc)})
            raise BackendError("commit failed") from exc
        return result

    def list(
        self,
        session: Session,
        org_id: uuid.UUID,
        ticket_id: uuid.UUID,
        *,
        limit: int | None = None,
    ) -> ActivityList:
        self.ticket_repository.get(session, org_id, ticket_id)
        rows = self.activity_repository.query(
            session,
            org_id,
            where=[eq("ticket_id", ticket_id)],
            limit=limit if limit is not None else get_settings().activity_default_limit,
        )

        warnings: list[str] = []
        try:
            actors = self.resolver.resolve(session, org_id, collect_actor_ids(row.actor_profile_id for row in rows))
        except BackendError as exc:
            actors = {}
            warnings.append(f"actor lookup failed: {exc.message}")

        items = [
            ActivityRead.model_validate(row).model_copy(
                update={"actor": actors.get(row.actor_profile_id) if row.actor_profile_id else None}
            )
            for row in rows
        ]
        return ActivityList(items=items, warnings=warnings)
