from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ticketdesk.identity.schemas import ProfileRead


TicketStatus = Literal["open", "pending", "resolved", "closed"]
TicketPriority = Literal["low", "normal", "high", "urgent"]
UpdateSource = Literal["dropdown", "primary_action", "other"]
DiffValue = str | bool | int | float | None | dict[str, Any]


class FieldChange(BaseModel):
    before: DiffValue = None
    after: DiffValue = None

    @model_validator(mode="after")
    def _must_change(self) -> FieldChange:
        if self.before == self.after:
            raise ValueError("before and after must differ")
        return self


TicketDiff = dict[str, FieldChange]


class TicketCreate(BaseModel):
    subject: str
    description: str | None = None
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    lead_id: UUID | None = None
    call_id: UUID | None = None
    requester_name: str | None = None
    requester_email: str | None = None
    requester_phone: str | None = None


class TicketUpdate(BaseModel):
    subject: str | None = None
    description: str | None = None
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    source: UpdateSource = "dropdown"


class TicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID
    lead_id: UUID | None
    call_id: UUID | None
    subject: str
    description: str | None
    requester_name: str | None
    requester_email: str | None
    requester_phone: str | None
    status: TicketStatus
    priority: TicketPriority
    created_at: datetime
    updated_at: datetime


class ActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID
    ticket_id: UUID
    actor_profile_id: UUID | None
    actor: ProfileRead | None = None
    event_type: str
    summary: str
    diff: TicketDiff | None
    created_at: datetime


class ActivityList(BaseModel):
    items: list[ActivityRead] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class CommentCreate(BaseModel):
    body: str


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID
    ticket_id: UUID
    author_profile_id: UUID | None
    author: ProfileRead | None = None
    body: str
    created_at: datetime


class CommentList(BaseModel):
    items: list[CommentRead] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
