"""Pure reducers over tickets and their activity ledger.

The caller loads the tickets created in a window and every activity row for
those tickets; everything below is computed from those rows alone.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from ticketdesk.analytics.schemas import (
    CountPoint,
    PriorityCount,
    ResponseTimes,
    SeriesBucket,
    TicketAnalyticsRead,
    TicketAnalyticsWindow,
    TicketFunnel,
    TicketKpis,
)


# First-response targets in seconds, by priority.
SLA_SECONDS = {
    "urgent": 15 * 60,
    "high": 60 * 60,
    "normal": 4 * 60 * 60,
    "low": 24 * 60 * 60,
}
DEFAULT_SLA_SECONDS = SLA_SECONDS["low"]

RESPONSE_EVENTS = frozenset({"comment_added", "status_changed", "priority_changed", "resolved", "reopened"})
CLOSED_STATUSES = frozenset({"resolved", "closed"})
OPEN_STATUSES = ("open", "pending")
UNSET_PRIORITY = "unassigned"


class TicketLike(Protocol):
    id: Any
    priority: str | None
    created_at: datetime


class ActivityLike(Protocol):
    ticket_id: Any
    event_type: str
    diff: dict[str, Any] | None
    created_at: datetime


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def percentile(sorted_values: Sequence[float], fraction: float) -> float | None:
    """Linear interpolation between closest ranks; ``None`` for no samples."""
    if not sorted_values or not 0.0 <= fraction <= 1.0:
        return None
    index = (len(sorted_values) - 1) * fraction
    lower = int(index)
    upper = min(lower + 1, len(sorted_values) - 1)
    weight = index - lower
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * weight


def sla_seconds(priority: str | None) -> int:
    return SLA_SECONDS.get((priority or "").strip().lower(), DEFAULT_SLA_SECONDS)


def _status_after(activity: ActivityLike) -> Any:
    change = (activity.diff or {}).get("status")
    if isinstance(change, dict):
        return change.get("after")
    return None


def closes_ticket(activity: ActivityLike) -> bool:
    return activity.event_type == "resolved" or _status_after(activity) in CLOSED_STATUSES


def _first_at(activities: Iterable[ActivityLike], predicate: Callable[[ActivityLike], bool]) -> dict[Any, datetime]:
    earliest: dict[Any, datetime] = {}
    for activity in activities:
        if not predicate(activity):
            continue
        at = as_utc(activity.created_at)
        current = earliest.get(activity.ticket_id)
        if current is None or at < current:
            earliest[activity.ticket_id] = at
    return earliest


def _responds(activity: ActivityLike) -> bool:
    return activity.event_type in RESPONSE_EVENTS


def ticket_kpis(
    tickets: Sequence[TicketLike],
    window_activities: Sequence[ActivityLike],
    *,
    open_now: int,
    now: datetime,
) -> TicketKpis:
    closed = {activity.ticket_id for activity in window_activities if closes_ticket(activity)}
    first_response = _first_at(window_activities, _responds)
    now = as_utc(now)

    breached = 0
    for ticket in tickets:
        created = as_utc(ticket.created_at)
        answered = first_response.get(ticket.id)
        waited = (answered or now) - created
        if waited.total_seconds() > sla_seconds(ticket.priority):
            breached += 1

    return TicketKpis(
        created_count=len(tickets),
        closed_count=len(closed),
        open_now_count=open_now,
        sla_breached_count=breached,
        sla_breached_rate=breached / len(tickets) if tickets else 0.0,
    )


def status_funnel(tickets: Sequence[TicketLike], window_activities: Sequence[ActivityLike]) -> TicketFunnel:
    pending = {activity.ticket_id for activity in window_activities if _status_after(activity) == "pending"}
    closed = {activity.ticket_id for activity in window_activities if closes_ticket(activity)}
    created = len(tickets)
    return TicketFunnel(
        created=created,
        pending=len(pending),
        closed=len(closed),
        created_to_pending_rate=len(pending) / created if created else 0.0,
        pending_to_closed_rate=len(closed) / len(pending) if pending else 0.0,
    )


def response_times(tickets: Sequence[TicketLike], activities: Sequence[ActivityLike]) -> ResponseTimes:
    first_response = _first_at(activities, _responds)
    first_close = _first_at(activities, closes_ticket)

    to_respond: list[float] = []
    to_close: list[float] = []
    for ticket in tickets:
        created = as_utc(ticket.created_at)
        if ticket.id in first_response:
            to_respond.append((first_response[ticket.id] - created).total_seconds())
        if ticket.id in first_close:
            to_close.append((first_close[ticket.id] - created).total_seconds())

    to_respond.sort()
    to_close.sort()
    return ResponseTimes(
        first_response_median_seconds=percentile(to_respond, 0.5),
        first_response_p90_seconds=percentile(to_respond, 0.9),
        time_to_close_median_seconds=percentile(to_close, 0.5),
        time_to_close_p90_seconds=percentile(to_close, 0.9),
    )


def _truncate(value: datetime, bucket: SeriesBucket) -> datetime:
    value = as_utc(value)
    if bucket == "hour":
        return value.replace(minute=0, second=0, microsecond=0)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def created_series(
    tickets: Iterable[TicketLike],
    start: datetime,
    end: datetime,
    bucket: SeriesBucket = "day",
) -> list[CountPoint]:
    step = timedelta(hours=1) if bucket == "hour" else timedelta(days=1)
    counts: dict[datetime, int] = {}
    current = _truncate(start, bucket)
    last = _truncate(end, bucket)
    while current <= last:
        counts[current] = 0
        current += step

    for ticket in tickets:
        key = _truncate(ticket.created_at, bucket)
        if key in counts:
            counts[key] += 1
    return [CountPoint(ts=key, count=count) for key, count in counts.items()]


def priority_breakdown(tickets: Iterable[TicketLike]) -> list[PriorityCount]:
    counts: dict[str, int] = {}
    for ticket in tickets:
        key = (ticket.priority or "").strip().lower() or UNSET_PRIORITY
        counts[key] = counts.get(key, 0) + 1
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [PriorityCount(priority=name, count=count) for name, count in ordered]


def summarize_tickets(
    window: TicketAnalyticsWindow,
    tickets: Sequence[TicketLike],
    activities: Sequence[ActivityLike],
    *,
    open_now: int,
    now: datetime,
) -> TicketAnalyticsRead:
    if not tickets:
        return TicketAnalyticsRead(window=window, kpis=TicketKpis(open_now_count=open_now))

    start, end = as_utc(window.start), as_utc(window.end)
    in_window = [activity for activity in activities if start <= as_utc(activity.created_at) <= end]
    return TicketAnalyticsRead(
        window=window,
        kpis=ticket_kpis(tickets, in_window, open_now=open_now, now=now),
        funnel=status_funnel(tickets, in_window),
        response_times=response_times(tickets, activities),
        created_over_time=created_series(tickets, window.start, window.end, window.bucket),
        priority_breakdown=priority_breakdown(tickets),
    )
