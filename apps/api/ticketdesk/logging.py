from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from ticketdesk.context import get_correlation_id, get_org_id


_KNOWN_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "reason",
        "ticket_id",
        "event_type",
        "changed_fields",
        "entity",
        "strategy",
        "warnings",
        "write_mode",
        "error",
    }
)
# Free-text fields that may echo backend messages.
_TRUNCATED_FIELDS = {"error": 500, "reason": 200}


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        if not getattr(record, "org_id", None):
            record.org_id = get_org_id()
        return True


_DEFAULT_RECORD_FACTORY = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _DEFAULT_RECORD_FACTORY(*args, **kwargs)
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "org_id": getattr(record, "org_id", None),
        }

        extras: dict[str, Any] = {}
        for key in record.__dict__.keys() & _KNOWN_FIELDS:
            value = record.__dict__[key]
            limit = _TRUNCATED_FIELDS.get(key)
            if limit is not None and isinstance(value, str):
                value = value[:limit]
            extras[key] = value

        if record.exc_info:
            extras["exception"] = self.formatException(record.exc_info)

        payload["fields"] = extras
        return json.dumps(payload, default=str)


def configure_logging() -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_ticketdesk_configured", False):
        return

    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(CorrelationIdFilter())

    root_logger.handlers.clear()
    root_logger.filters.clear()
    root_logger.setLevel(level)
    logging.setLogRecordFactory(_record_factory)
    root_logger.addHandler(handler)
    root_logger._ticketdesk_configured = True  # type: ignore[attr-defined]
