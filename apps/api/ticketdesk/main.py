from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from ticketdesk.api.errors import register_exception_handlers
from ticketdesk.api.routes import router as api_router
from ticketdesk.core.config import Settings, get_settings
from ticketdesk.core.context import RequestContextMiddleware
from ticketdesk.core.events import InternalEvent, event_bus
from ticketdesk.logging import configure_logging
from ticketdesk.middleware.admin_auth import AdminBasicAuthMiddleware
from ticketdesk.middleware.correlation_id import CorrelationIdMiddleware
from ticketdesk.middleware.rate_limit import TicketMutationRateLimitMiddleware
from ticketdesk.middleware.request_logging import RequestLoggingMiddleware
from ticketdesk.otel import get_fastapi_server_request_hook, setup_otel
from ticketdesk.platform.security.gateway import AdminGatewayConfig


configure_logging()
logger = logging.getLogger("ticketdesk.lifecycle")
_subscriptions_registered = False


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system.started", extra={"reason": str(event.payload.get("service"))})


def _on_ticket_event(event: InternalEvent) -> None:
    payload = event.payload.get("payload") if isinstance(event.payload, dict) else None
    ticket_id = payload.get("ticket_id") if isinstance(payload, dict) else None
    logger.debug("ticket.event", extra={"event_type": event.name, "ticket_id": ticket_id})


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        event_bus.subscribe("ticket.*", _on_ticket_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


def build_app(settings: Settings | None = None, gateway_config: AdminGatewayConfig | None = None) -> FastAPI:
    settings = settings or get_settings()
    gateway_config = gateway_config or AdminGatewayConfig.from_settings(settings)
    if not gateway_config.is_configured:
        logger.warning("gateway.unconfigured", extra={"reason": "admin routes will answer 503"})

    application = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    application.add_middleware(TicketMutationRateLimitMiddleware)
    application.add_middleware(AdminBasicAuthMiddleware, config=gateway_config)
    application.add_middleware(RequestContextMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    application.add_middleware(CorrelationIdMiddleware)
    application.include_router(api_router)
    register_exception_handlers(application)

    if settings.otel_enabled:
        setup_otel("ticketdesk", True)

    if not getattr(application, "_is_instrumented_by_opentelemetry", False):
        FastAPIInstrumentor().instrument_app(application, server_request_hook=get_fastapi_server_request_hook())
    return application


app = build_app()
