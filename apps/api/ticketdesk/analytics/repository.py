from __future__ import annotations

from ticketdesk.analytics.models import Call
from ticketdesk.platform.security.repository import TenantRepository


class CallRepository(TenantRepository):
    model = Call
    entity = "calls"
