"""Pure reducers over a window of call records.

Nothing here touches the database: every function takes the rows it needs and
returns plain schema objects, so the same input always yields the same output.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Protocol

from ticketdesk.analytics.schemas import AgentStats, CallSummary, OutcomeShare, TrendBucket, TrendPoint


UNASSIGNED_AGENT = "Unassigned"
UNCLASSIFIED_OUTCOME = "Unclassified"
HUMAN_AGENT_HOURLY_RATE = 25.0


class CallLike(Protocol):
    agent_name: str | None
    duration_seconds: int | None
    cost_usd: Any
    outcome: str | None
    started_at: datetime | None


@dataclass(frozen=True, slots=True)
class CallSample:
    agent_name: str | None = None
    duration_seconds: int | None = None
    cost_usd: float | Decimal | None = None
    outcome: str | None = None
    started_at: datetime | None = None


@dataclass(slots=True)
class _Totals:
    calls: int = 0
    duration: float = 0.0
    cost: float = 0.0

    def add(self, call: CallLike) -> None:
        self.calls += 1
        self.duration += float(call.duration_seconds or 0)
        self.cost += float(call.cost_usd or 0)

    @property
    def avg_duration(self) -> float:
        return self.duration / self.calls if self.calls else 0.0


def _agent_key(call: CallLike) -> str:
    name = (call.agent_name or "").strip()
    return name or UNASSIGNED_AGENT


def _outcome_key(call: CallLike) -> str:
    outcome = (call.outcome or "").strip()
    return outcome or UNCLASSIFIED_OUTCOME


def by_agent(calls: Iterable[CallLike]) -> list[AgentStats]:
    groups: dict[str, _Totals] = {}
    for call in calls:
        groups.setdefault(_agent_key(call), _Totals()).add(call)

    rows = [
        AgentStats(agent_name=name, calls=totals.calls, avg_duration=totals.avg_duration, cost=round(totals.cost, 6))
        for name, totals in groups.items()
    ]
    return sorted(rows, key=lambda row: (-row.calls, row.agent_name))


def outcome_breakdown(calls: Sequence[CallLike]) -> list[OutcomeShare]:
    total = len(calls)
    if total == 0:
        return []

    counts: dict[str, int] = {}
    for call in calls:
        key = _outcome_key(call)
        counts[key] = counts.get(key, 0) + 1

    rows = [OutcomeShare(outcome=outcome, calls=count, percentage=100.0 * count / total) for outcome, count in counts.items()]
    return sorted(rows, key=lambda row: (-row.calls, row.outcome))


def summarize(calls: Iterable[CallLike]) -> CallSummary:
    totals = _Totals()
    for call in calls:
        totals.add(call)

    human_cost = totals.duration / 3600.0 * HUMAN_AGENT_HOURLY_RATE
    return CallSummary(
        total_calls=totals.calls,
        total_cost=round(totals.cost, 6),
        avg_duration=totals.avg_duration,
        estimated_savings=round(max(human_cost - totals.cost, 0.0), 6),
    )


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def _bucket_key(value: datetime, bucket: TrendBucket) -> date:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    day = value.date()
    return week_start(day) if bucket == "week" else day


def _bucket_range(start: datetime, end: datetime, bucket: TrendBucket) -> list[date]:
    first = _bucket_key(start, bucket)
    last = _bucket_key(end, bucket)
    step = timedelta(days=7 if bucket == "week" else 1)
    keys: list[date] = []
    current = first
    while current <= last:
        keys.append(current)
        current += step
    return keys


def daily_trend(calls: Iterable[CallLike], start: datetime, end: datetime, bucket: TrendBucket = "day") -> list[TrendPoint]:
    """Zero-filled per-bucket totals between ``start`` and ``end`` inclusive."""
    buckets = {key: _Totals() for key in _bucket_range(start, end, bucket)}
    for call in calls:
        if call.started_at is None:
            continue
        totals = buckets.get(_bucket_key(call.started_at, bucket))
        if totals is not None:
            totals.add(call)

    return [
        TrendPoint(date=key, calls=totals.calls, avg_duration=totals.avg_duration, cost=round(totals.cost, 6))
        for key, totals in buckets.items()
    ]
