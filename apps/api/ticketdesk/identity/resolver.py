from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from ticketdesk.identity.repository import ProfileRepository
from ticketdesk.identity.schemas import ProfileRead
from ticketdesk.platform.security.repository import in_


logger = logging.getLogger("ticketdesk.identity")


def collect_actor_ids(values: Iterable[uuid.UUID | None]) -> set[uuid.UUID]:
    return {value for value in values if value is not None}


@dataclass(slots=True)
class ActorResolver:
    """Batched profile lookup for ledger rows.

    Callers gather every actor id they need first; ``resolve`` then issues a
    single ``IN`` query. Ids with no matching profile are left out of the map.
    """

    profile_repository: ProfileRepository = ProfileRepository()

    def resolve(self, session: Session, org_id: uuid.UUID, actor_ids: set[uuid.UUID]) -> dict[uuid.UUID, ProfileRead]:
        if not actor_ids:
            return {}

        rows = self.profile_repository.query(
            session,
            org_id,
            where=[in_("id", sorted(actor_ids, key=str))],
            limit=len(actor_ids),
        )
        resolved = {row.id: ProfileRead.model_validate(row) for row in rows}
        missing = len(actor_ids) - len(resolved)
        if missing:
            logger.debug("actors.unresolved", extra={"entity": "profiles", "reason": f"{missing} missing"})
        return resolved


actor_resolver = ActorResolver()
