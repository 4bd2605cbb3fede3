from __future__ import annotations

import math
import re
import threading
import time
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ticketdesk.api.errors import middleware_error_response
from ticketdesk.core.auth import subject_or_anonymous
from ticketdesk.core.config import get_settings


_TICKET_ROUTE_RE = re.compile(r"^/api/orgs/[^/]+/tickets(?:/|$)")
_ROUTE_GROUP = "tickets"
_MUTATING_METHODS = frozenset({"POST", "PATCH", "PUT", "DELETE"})
_WINDOW_SECONDS = 60


@dataclass
class _BucketState:
    tokens: float
    last_refill: float


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: int = 0


class TokenBucketLimiter:
    """Per-key token buckets refilled continuously over a fixed window."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: dict[tuple[str, str], _BucketState] = {}

    def take(self, key: tuple[str, str], capacity: int, window_seconds: int = _WINDOW_SECONDS) -> RateDecision:
        if capacity <= 0:
            return RateDecision(allowed=False, retry_after=window_seconds)

        now = time.monotonic()
        refill_rate = capacity / float(window_seconds)
        with self._lock:
            bucket = self._buckets.setdefault(key, _BucketState(tokens=float(capacity), last_refill=now))
            elapsed = max(0.0, now - bucket.last_refill)
            bucket.tokens = min(float(capacity), bucket.tokens + elapsed * refill_rate)
            bucket.last_refill = now

            if bucket.tokens < 1.0:
                return RateDecision(allowed=False, retry_after=max(1, math.ceil((1.0 - bucket.tokens) / refill_rate)))
            bucket.tokens -= 1.0
            return RateDecision(allowed=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()


_limiter = TokenBucketLimiter()


class TicketMutationRateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if settings.rate_limit_disabled or request.method.upper() not in _MUTATING_METHODS:
            return await call_next(request)

        if _TICKET_ROUTE_RE.match(request.url.path) is None:
            return await call_next(request)

        caller = subject_or_anonymous(request.headers.get("authorization"))
        decision = _limiter.take((caller, _ROUTE_GROUP), settings.rate_limit_ticket_mutations_per_minute)
        if decision.allowed:
            return await call_next(request)

        return middleware_error_response(
            request,
            status_code=429,
            code="RATE_LIMITED",
            message="Too many requests",
            headers={"Retry-After": str(decision.retry_after)},
        )


def reset_rate_limiter() -> None:
    _limiter.clear()
