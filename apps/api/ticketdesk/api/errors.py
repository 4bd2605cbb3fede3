from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ticketdesk.context import get_correlation_id
from ticketdesk.core.context import get_request_context
from ticketdesk.platform.security.errors import (
    BackendError,
    ForbiddenError,
    NotFoundError,
    PartialWriteError,
    TicketDeskError,
    UnauthorizedError,
    ValidationError,
)


logger = logging.getLogger("ticketdesk.errors")

_STATUS_BY_ERROR: list[tuple[type[TicketDeskError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PartialWriteError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (BackendError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    context = get_request_context(request)
    correlation_id = get_correlation_id() or (context.request_id if context is not None else None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=jsonable_encoder(details),
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def middleware_error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Error envelope for middleware that answers before routing."""
    correlation_id = (
        get_correlation_id()
        or getattr(request.state, "correlation_id", None)
        or request.headers.get("x-correlation-id")
        or str(uuid.uuid4())
    )
    payload = ErrorEnvelope(code=code, message=message, details=None, correlation_id=correlation_id)
    response = JSONResponse(status_code=status_code, content=payload.__dict__)
    for name, value in (headers or {}).items():
        response.headers[name] = value
    response.headers["X-Correlation-Id"] = correlation_id
    return response


def status_for(exc: TicketDeskError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def handle_ticketdesk_error(request: Request, exc: TicketDeskError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("request.failed", extra={"path": request.url.path, "status_code": status_code, "error": exc.message})
    response = error_response(request, status_code=status_code, code=exc.code, message=exc.message, details=exc.details)
    if isinstance(exc, UnauthorizedError):
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code=ValidationError.code,
        message="request validation failed",
        details=exc.errors(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TicketDeskError, handle_ticketdesk_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)  # type: ignore[arg-type]
