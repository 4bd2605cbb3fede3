from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

admin_gateway_decisions_total = Counter(
    "admin_gateway_decisions_total",
    "Admin gateway decisions by reason",
    ["reason"],
)

ticket_mutations_total = Counter(
    "ticket_mutations_total",
    "Ticket mutations by event type",
    ["event_type"],
)

ledger_appends_total = Counter(
    "ledger_appends_total",
    "Rows appended to the activity and comment ledgers",
    ["ledger"],
)

ledger_partial_writes_total = Counter(
    "ledger_partial_writes_total",
    "Ticket writes whose activity entry failed to persist",
)

tenant_backend_errors_total = Counter(
    "tenant_backend_errors_total",
    "Backend failures surfaced by the tenant data accessor",
    ["entity"],
)

fallback_warnings_total = Counter(
    "fallback_warnings_total",
    "Non-fatal errors collected while walking fallback lookup strategies",
    ["strategy"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _PATH_PARAM_RE.sub("{id}", path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _PATH_PARAM_RE.sub("{id}", route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_gateway_decision(reason: str) -> None:
    admin_gateway_decisions_total.labels(reason=reason).inc()


def observe_ticket_mutation(event_type: str) -> None:
    ticket_mutations_total.labels(event_type=event_type).inc()


def observe_ledger_append(ledger: str, count: int = 1) -> None:
    if count > 0:
        ledger_appends_total.labels(ledger=ledger).inc(count)


def observe_partial_write() -> None:
    ledger_partial_writes_total.inc()


def observe_backend_error(entity: str) -> None:
    tenant_backend_errors_total.labels(entity=entity).inc()


def observe_fallback_warning(strategy: str) -> None:
    fallback_warnings_total.labels(strategy=strategy).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
