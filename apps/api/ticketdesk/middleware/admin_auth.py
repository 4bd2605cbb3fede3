from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp

from ticketdesk.api.errors import middleware_error_response
from ticketdesk.metrics import observe_gateway_decision
from ticketdesk.platform.security.gateway import AdminGatewayConfig, authorize


logger = logging.getLogger("ticketdesk.gateway")

_DENIALS = {
    401: ("UNAUTHORIZED", "Authentication required"),
    503: ("ADMIN_NOT_CONFIGURED", "Admin not configured"),
}


class AdminBasicAuthMiddleware(BaseHTTPMiddleware):
    """Basic-auth gate in front of every admin path prefix."""

    def __init__(self, app: ASGIApp, config: AdminGatewayConfig) -> None:
        super().__init__(app)
        self.config = config

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        path = request.url.path
        decision = authorize(self.config, path, request.headers.get("authorization"))
        if decision.reason != "unprotected":
            observe_gateway_decision(decision.reason or "unknown")

        if decision.allowed:
            return await call_next(request)

        status_code = decision.status_code or 401
        logger.warning("gateway.denied", extra={"path": path, "status_code": status_code, "reason": decision.reason})
        code, message = _DENIALS.get(status_code, _DENIALS[401])
        # 503 carries no challenge.
        headers = {"WWW-Authenticate": self.config.challenge()} if status_code == 401 else None
        return middleware_error_response(request, status_code=status_code, code=code, message=message, headers=headers)
