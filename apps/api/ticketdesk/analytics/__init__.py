from ticketdesk.analytics.aggregator import CallSample, by_agent, daily_trend, outcome_breakdown, summarize
from ticketdesk.analytics.fallback import FallbackResult, LookupStrategy, first_match
from ticketdesk.analytics.models import Call
from ticketdesk.analytics.ticket_metrics import summarize_tickets

__all__ = [
    "Call",
    "CallSample",
    "by_agent",
    "outcome_breakdown",
    "summarize",
    "daily_trend",
    "summarize_tickets",
    "LookupStrategy",
    "FallbackResult",
    "first_match",
]
