from ticketdesk.tickets.activity import ActivityLedger
from ticketdesk.tickets.comments import CommentLedger, comment_ledger
from ticketdesk.tickets.models import Ticket, TicketActivity, TicketComment
from ticketdesk.tickets.schemas import (
    ActivityList,
    ActivityRead,
    CommentCreate,
    CommentList,
    CommentRead,
    FieldChange,
    TicketCreate,
    TicketRead,
    TicketUpdate,
)
from ticketdesk.tickets.service import TicketService, ticket_service

__all__ = [
    "Ticket",
    "TicketComment",
    "TicketActivity",
    "FieldChange",
    "TicketCreate",
    "TicketUpdate",
    "TicketRead",
    "ActivityRead",
    "ActivityList",
    "CommentCreate",
    "CommentRead",
    "CommentList",
    "ActivityLedger",
    "CommentLedger",
    "comment_ledger",
    "TicketService",
    "ticket_service",
]
