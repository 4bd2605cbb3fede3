from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from ticketdesk.core.config import get_settings
from ticketdesk.metrics import observe_backend_error
from ticketdesk.otel import tenant_span
from ticketdesk.platform.security.errors import BackendError, NotFoundError, ValidationError
from ticketdesk.platform.security.rls import apply_org_filter, clamp_limit


logger = logging.getLogger("ticketdesk.tenant")


@dataclass(frozen=True, slots=True)
class Condition:
    column: str
    op: str
    value: Any


def eq(column: str, value: Any) -> Condition:
    return Condition(column, "eq", value)


def in_(column: str, values: Sequence[Any]) -> Condition:
    return Condition(column, "in", list(values))


def gte(column: str, value: Any) -> Condition:
    return Condition(column, "gte", value)


def lte(column: str, value: Any) -> Condition:
    return Condition(column, "lte", value)


_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "eq": lambda column, value: column.is_(None) if value is None else column == value,
    "in": lambda column, value: column.in_(value),
    "gte": lambda column, value: column >= value,
    "lte": lambda column, value: column <= value,
}


class TenantRepository:
    """Read and append access to one org-scoped collection.

    Every statement built here carries ``org_id`` as an equality filter, and
    inserts always stamp the caller's org onto the row. There is no method
    that takes a query without an org.
    """

    model: Any = None
    entity = ""

    def _column(self, name: str) -> Any:
        column = getattr(self.model, name, None)
        if column is None or name == "org_id":
            raise ValueError(f"unknown filter column '{name}' for {self.entity}")
        return column

    def _backend_error(self, exc: SQLAlchemyError, operation: str) -> BackendError:
        observe_backend_error(self.entity)
        logger.error(
            "tenant.backend_error",
            extra={"entity": self.entity, "reason": operation, "error": str(exc)},
        )
        return BackendError(f"{self.entity} {operation} failed", details={"entity": self.entity})

    def _filtered(self, stmt: Select[Any], org_id: uuid.UUID, where: Sequence[Condition]) -> Select[Any]:
        stmt = apply_org_filter(stmt, self.model, org_id)
        for condition in where:
            operator = _OPERATORS.get(condition.op)
            if operator is None:
                raise ValueError(f"unsupported operator '{condition.op}'")
            stmt = stmt.where(operator(self._column(condition.column), condition.value))
        return stmt

    def select_statement(
        self,
        org_id: uuid.UUID,
        *,
        where: Sequence[Condition] = (),
        order_by: str = "created_at",
        descending: bool = True,
        limit: int = 100,
        offset: int = 0,
        for_update: bool = False,
    ) -> Select[Any]:
        stmt = self._filtered(select(self.model), org_id, where)

        # id breaks ties so offset pages never skip or repeat rows.
        order_column = self._column(order_by)
        id_column = self.model.id
        if descending:
            stmt = stmt.order_by(order_column.desc(), id_column.desc())
        else:
            stmt = stmt.order_by(order_column.asc(), id_column.asc())
        stmt = stmt.offset(max(offset, 0)).limit(limit)
        if for_update:
            # Locked rows must reflect the committed values, not the identity map.
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return stmt

    def query(
        self,
        session: Session,
        org_id: uuid.UUID,
        *,
        where: Sequence[Condition] = (),
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
        offset: int = 0,
        for_update: bool = False,
    ) -> list[Any]:
        settings = get_settings()
        bounded = clamp_limit(limit, default=settings.query_default_limit, ceiling=settings.query_max_limit)
        stmt = self.select_statement(
            org_id,
            where=where,
            order_by=order_by,
            descending=descending,
            limit=bounded,
            offset=offset,
            for_update=for_update,
        )

        with tenant_span(f"tenant.query.{self.entity}", entity=self.entity, limit=bounded, org_id=str(org_id)) as span:
            try:
                rows = list(session.scalars(stmt).all())
            except SQLAlchemyError as exc:
                raise self._backend_error(exc, "query") from exc
            span.set_attribute("row_count", len(rows))
        return rows

    def query_all(
        self,
        session: Session,
        org_id: uuid.UUID,
        *,
        where: Sequence[Condition] = (),
        order_by: str = "created_at",
        descending: bool = True,
    ) -> list[Any]:
        """Every matching row, fetched in pages no larger than the query ceiling."""
        page_size = get_settings().query_max_limit
        rows: list[Any] = []
        offset = 0
        while True:
            page = self.query(
                session,
                org_id,
                where=where,
                order_by=order_by,
                descending=descending,
                limit=page_size,
                offset=offset,
            )
            rows.extend(page)
            if len(page) < page_size:
                return rows
            offset += page_size

    def count(self, session: Session, org_id: uuid.UUID, *, where: Sequence[Condition] = ()) -> int:
        stmt = self._filtered(select(func.count()).select_from(self.model), org_id, where)
        with tenant_span(f"tenant.count.{self.entity}", entity=self.entity, org_id=str(org_id)):
            try:
                return int(session.scalar(stmt) or 0)
            except SQLAlchemyError as exc:
                raise self._backend_error(exc, "count") from exc

    def first(
        self,
        session: Session,
        org_id: uuid.UUID,
        *,
        where: Sequence[Condition] = (),
        order_by: str = "created_at",
        for_update: bool = False,
    ) -> Any | None:
        rows = self.query(session, org_id, where=where, order_by=order_by, limit=1, for_update=for_update)
        return rows[0] if rows else None

    def get(self, session: Session, org_id: uuid.UUID, row_id: uuid.UUID, *, for_update: bool = False) -> Any:
        row = self.first(session, org_id, where=[eq("id", row_id)], for_update=for_update)
        if row is None:
            raise NotFoundError(self.entity, row_id)
        return row

    def insert(self, session: Session, org_id: uuid.UUID, values: dict[str, Any]) -> Any:
        supplied_org = values.get("org_id")
        if supplied_org is not None and supplied_org != org_id:
            raise ValidationError("org_id does not match the request organization", details={"field": "org_id"})

        row = self.model(**{**values, "org_id": org_id})
        with tenant_span(f"tenant.insert.{self.entity}", entity=self.entity, org_id=str(org_id)):
            try:
                session.add(row)
                session.flush()
            except SQLAlchemyError as exc:
                raise self._backend_error(exc, "insert") from exc
        return row


class MutableTenantRepository(TenantRepository):
    """Tenant collection whose rows may be updated in place."""

    def update(self, session: Session, org_id: uuid.UUID, row: Any, changes: dict[str, Any]) -> Any:
        if row.org_id != org_id:
            raise NotFoundError(self.entity, row.id)
        if "org_id" in changes or "id" in changes:
            raise ValidationError("identity columns cannot be changed", details={"fields": sorted(changes)})

        for key, value in changes.items():
            setattr(row, key, value)
        with tenant_span(f"tenant.update.{self.entity}", entity=self.entity, org_id=str(org_id)):
            try:
                session.flush()
            except SQLAlchemyError as exc:
                raise self._backend_error(exc, "update") from exc
        return row
