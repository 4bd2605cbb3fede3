from __future__ import annotations

from ticketdesk.platform.security.repository import MutableTenantRepository, TenantRepository
from ticketdesk.tickets.models import Ticket, TicketActivity, TicketComment


class TicketRepository(MutableTenantRepository):
    model = Ticket
    entity = "tickets"


class CommentRepository(TenantRepository):
    model = TicketComment
    entity = "ticket_comments"


class ActivityRepository(TenantRepository):
    model = TicketActivity
    entity = "ticket_activity"
