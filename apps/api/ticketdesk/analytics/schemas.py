from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


AnalyticsRange = Literal["7d", "30d", "90d"]
TrendBucket = Literal["day", "week"]


class CallRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID
    agent_id: UUID | None
    agent_name: str | None
    external_call_id: str | None
    lead_id: UUID | None
    direction: str | None
    outcome: str | None
    duration_seconds: int | None
    cost_usd: Decimal | None
    started_at: datetime | None
    created_at: datetime


class AgentStats(BaseModel):
    agent_name: str
    calls: int
    avg_duration: float
    cost: float


class OutcomeShare(BaseModel):
    outcome: str
    calls: int
    percentage: float


class CallSummary(BaseModel):
    total_calls: int
    total_cost: float
    avg_duration: float
    estimated_savings: float


class TrendPoint(BaseModel):
    date: date
    calls: int
    avg_duration: float
    cost: float


class AnalyticsWindow(BaseModel):
    start: datetime
    end: datetime
    bucket: TrendBucket = "day"


class CallAnalyticsRead(BaseModel):
    window: AnalyticsWindow
    summary: CallSummary
    by_agent: list[AgentStats] = Field(default_factory=list)
    outcomes: list[OutcomeShare] = Field(default_factory=list)
    trend: list[TrendPoint] = Field(default_factory=list)


class CallLookupRead(BaseModel):
    call: CallRead | None = None
    strategy: str | None = None
    warnings: list[str] = Field(default_factory=list)


class CallList(BaseModel):
    items: list[CallRead] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


TicketAnalyticsRange = Literal["24h", "7d", "30d", "90d"]
SeriesBucket = Literal["hour", "day"]


class TicketAnalyticsWindow(BaseModel):
    start: datetime
    end: datetime
    bucket: SeriesBucket = "day"


class TicketKpis(BaseModel):
    created_count: int = 0
    closed_count: int = 0
    open_now_count: int = 0
    sla_breached_count: int = 0
    sla_breached_rate: float = 0.0


class TicketFunnel(BaseModel):
    created: int = 0
    pending: int = 0
    closed: int = 0
    created_to_pending_rate: float = 0.0
    pending_to_closed_rate: float = 0.0


class ResponseTimes(BaseModel):
    first_response_median_seconds: float | None = None
    first_response_p90_seconds: float | None = None
    time_to_close_median_seconds: float | None = None
    time_to_close_p90_seconds: float | None = None


class CountPoint(BaseModel):
    ts: datetime
    count: int


class PriorityCount(BaseModel):
    priority: str
    count: int


class TicketAnalyticsRead(BaseModel):
    window: TicketAnalyticsWindow
    kpis: TicketKpis = Field(default_factory=TicketKpis)
    funnel: TicketFunnel = Field(default_factory=TicketFunnel)
    response_times: ResponseTimes = Field(default_factory=ResponseTimes)
    created_over_time: list[CountPoint] = Field(default_factory=list)
    priority_breakdown: list[PriorityCount] = Field(default_factory=list)
