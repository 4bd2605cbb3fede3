from __future__ import annotations

import uuid
from dataclasses import dataclass, field

MUTATING_ROLES = frozenset({"owner", "admin"})


@dataclass(slots=True)
class TenantContext:
    """Caller identity bound to exactly one organization."""

    user_id: str
    org_id: uuid.UUID
    profile_id: uuid.UUID | None = None
    correlation_id: str | None = None
    roles: list[str] = field(default_factory=list)

    @property
    def can_mutate(self) -> bool:
        return any(role.lower() in MUTATING_ROLES for role in self.roles)
