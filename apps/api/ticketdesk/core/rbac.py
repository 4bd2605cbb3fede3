import uuid

from fastapi import Depends
from starlette.requests import Request

from ticketdesk.context import get_correlation_id, set_org_id
from ticketdesk.core.auth import AuthUser, get_current_user
from ticketdesk.core.context import get_request_context
from ticketdesk.platform.security.context import TenantContext
from ticketdesk.platform.security.errors import ForbiddenError, UnauthorizedError


async def get_tenant_context(
    org_id: uuid.UUID,
    request: Request,
    user: AuthUser = Depends(get_current_user),
) -> TenantContext:
    """Bind the request to ``org_id`` once the caller is proven a member of it."""
    if user.is_anonymous:
        raise UnauthorizedError("authentication required")
    if user.org_id != org_id:
        raise ForbiddenError("not a member of this organization", details={"org_id": str(org_id)})

    context = get_request_context(request)
    if context is not None:
        context.bind_org(str(org_id))
    else:
        set_org_id(str(org_id))
    return TenantContext(
        user_id=user.sub,
        org_id=org_id,
        profile_id=user.profile_id,
        correlation_id=get_correlation_id(),
        roles=list(user.roles),
    )


async def require_owner_or_admin(ctx: TenantContext = Depends(get_tenant_context)) -> TenantContext:
    if not ctx.can_mutate:
        raise ForbiddenError("only owners and admins can perform this action")
    return ctx
