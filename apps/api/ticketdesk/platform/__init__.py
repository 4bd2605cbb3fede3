from ticketdesk.platform.security import (
    AdminGatewayConfig,
    BackendError,
    MutableTenantRepository,
    NotFoundError,
    PartialWriteError,
    TenantContext,
    TenantRepository,
    TicketDeskError,
    ValidationError,
)

__all__ = [
    "AdminGatewayConfig",
    "TenantContext",
    "TicketDeskError",
    "ValidationError",
    "NotFoundError",
    "BackendError",
    "PartialWriteError",
    "TenantRepository",
    "MutableTenantRepository",
]
