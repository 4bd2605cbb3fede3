from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ticketdesk.context import set_org_id


@dataclass
class RequestContext:
    request_id: str
    correlation_id: str
    user_id: str | None = None
    org_id: str | None = None

    def bind_org(self, org_id: str) -> None:
        self.org_id = org_id
        set_org_id(org_id)


def get_request_context(request: Request) -> RequestContext | None:
    return getattr(request.state, "context", None)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = getattr(request.state, "correlation_id", None) or ""
        request.state.context = RequestContext(request_id=correlation_id, correlation_id=correlation_id)
        response = await call_next(request)
        response.headers["x-request-id"] = request.state.context.request_id
        return response
