from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.sql import Select


def apply_org_filter(query: Select[Any], model: Any, org_id: uuid.UUID) -> Select[Any]:
    """Bind the organization equality filter every tenant query carries."""

    if not hasattr(model, "org_id"):
        raise TypeError(f"{model!r} is not tenant scoped")
    return query.where(model.org_id == org_id)


def clamp_limit(limit: int | None, *, default: int, ceiling: int) -> int:
    if limit is None:
        return default
    return min(max(int(limit), 1), ceiling)
