from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ticketdesk.core.context import get_request_context
from ticketdesk.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("ticketdesk.request")


def _record(request: Request, status_code: int, started: float) -> dict[str, object]:
    # Resolved after routing so the label uses the route template.
    path = resolve_http_path_label(request)
    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    observe_http_request(method=request.method, path=path, status=status_code, duration=duration_ms / 1000)
    context = get_request_context(request)
    return {
        "method": request.method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
        "org_id": context.org_id if context is not None else None,
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error("http.error", exc_info=True, extra=_record(request, 500, started))
            raise

        logger.info("http.request", extra=_record(request, response.status_code, started))
        return response
