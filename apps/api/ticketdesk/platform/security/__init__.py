from ticketdesk.platform.security.context import TenantContext
from ticketdesk.platform.security.errors import (
    BackendError,
    ForbiddenError,
    NotFoundError,
    PartialWriteError,
    TicketDeskError,
    UnauthorizedError,
    ValidationError,
)
from ticketdesk.platform.security.gateway import AdminGatewayConfig, GatewayDecision, authorize
from ticketdesk.platform.security.repository import (
    Condition,
    MutableTenantRepository,
    TenantRepository,
    eq,
    gte,
    in_,
    lte,
)
from ticketdesk.platform.security.rls import apply_org_filter, clamp_limit

__all__ = [
    "TenantContext",
    "TicketDeskError",
    "ValidationError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "BackendError",
    "PartialWriteError",
    "AdminGatewayConfig",
    "GatewayDecision",
    "authorize",
    "Condition",
    "TenantRepository",
    "MutableTenantRepository",
    "eq",
    "in_",
    "gte",
    "lte",
    "apply_org_filter",
    "clamp_limit",
]
