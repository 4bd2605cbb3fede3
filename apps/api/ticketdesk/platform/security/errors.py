from __future__ import annotations

import uuid
from typing import Any


class TicketDeskError(Exception):
    """Base error for the ticket and activity subsystem."""

    code = "ticketdesk_error"

    def __init__(self, message: str, *, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(TicketDeskError):
    """Malformed or missing input. Always fixable by the caller."""

    code = "validation_error"


class UnauthorizedError(TicketDeskError):
    code = "unauthorized"


class ForbiddenError(TicketDeskError):
    code = "forbidden"


class NotFoundError(TicketDeskError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found", details={"entity": entity, "id": str(entity_id)})


class BackendError(TicketDeskError):
    """Storage unavailable, timed out, or the query failed."""

    code = "backend_error"


class PartialWriteError(TicketDeskError):
    """Raised when a ticket write committed but its audit row did not.

    The operation must be treated as unconfirmed and reconciled by an operator.
    """

    code = "partial_write"

    def __init__(self, ticket_id: uuid.UUID, diff: dict[str, Any] | None, cause: str) -> None:
        self.ticket_id = ticket_id
        self.diff = diff
        super().__init__(
            "ticket was written but its activity entry was not",
            details={"ticket_id": str(ticket_id), "diff": diff, "cause": cause[:500]},
        )
