from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from ticketdesk.admin.api import router as admin_router
from ticketdesk.analytics.api import router as analytics_router
from ticketdesk.analytics.api import ticket_router as ticket_analytics_router
from ticketdesk.core.auth import AuthUser, get_current_user
from ticketdesk.core.config import get_settings
from ticketdesk.metrics import generate_metrics_payload, metrics_content_type
from ticketdesk.tickets.api import router as tickets_router

router = APIRouter()
router.include_router(tickets_router)
router.include_router(analytics_router)
router.include_router(ticket_analytics_router)
router.include_router(admin_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser = Depends(get_current_user)) -> dict[str, str | list[str] | None]:
    return {
        "sub": user.sub,
        "roles": user.roles,
        "org_id": str(user.org_id) if user.org_id else None,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: AuthUser = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if "system.metrics.read" not in user.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing permission: system.metrics.read")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
