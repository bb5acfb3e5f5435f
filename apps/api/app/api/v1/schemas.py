from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.core.types import DuplicateCategory, RecommendationState, TimelineEventType, TriggerType

InteractionTypeIn = Literal["email", "meeting", "call", "linkedin", "whatsapp", "other"]
DirectionIn = Literal["inbound", "outbound", "na"]
SocialChannelIn = Literal["linkedin_message", "linkedin_connection", "whatsapp", "other"]
SignalTypeIn = Literal["job_change", "birthday", "company_news"]
PeriodIn = Literal["daily", "weekly", "monthly"]
ImportStatus = Literal["created", "duplicate", "conflict", "invalid"]


class ContactIn(BaseModel):
    first_name: str
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    tags: list[str] = Field(default_factory=list)
    contact_frequency_days: int | None = None
    relationship_strength: float | None = None
    last_contact_date: datetime | None = None


class DuplicateMatchOut(BaseModel):
    contact_id: str
    display_name: str
    email: str | None = None
    phone: str | None = None
    score: float
    category: DuplicateCategory
    matched_fields: list[str] = Field(default_factory=list)


class ContactOut(BaseModel):
    contact_id: str
    first_name: str
    last_name: str | None = None
    display_name: str
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    tags: list[str] = Field(default_factory=list)
    relationship_strength: float
    raw_relationship_strength: float
    relationship_label: str
    last_contact_date: datetime | None = None
    contact_frequency_days: int
    due_date: datetime
    is_past_due: bool
    created_at: datetime
    updated_at: datetime
    duplicate_matches: list[DuplicateMatchOut] = Field(default_factory=list)


class DuplicateCheckIn(BaseModel):
    email: str | None = None
    phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class DuplicateCheckResponse(BaseModel):
    is_duplicate: bool
    matches: list[DuplicateMatchOut] = Field(default_factory=list)


class ContactImportIn(BaseModel):
    contacts: list[ContactIn] = Field(default_factory=list)


class ImportRowOut(BaseModel):
    index: int
    status: ImportStatus
    contact_id: str | None = None
    message: str | None = None
    matches: list[DuplicateMatchOut] = Field(default_factory=list)


class ContactImportResponse(BaseModel):
    created: int
    duplicate: int
    conflict: int
    invalid: int
    rows: list[ImportRowOut] = Field(default_factory=list)


class FrequencyIn(BaseModel):
    contact_frequency_days: int


class BulkFrequencyIn(BaseModel):
    tags: list[str] = Field(default_factory=list)
    contact_frequency_days: int


class BulkFrequencyResponse(BaseModel):
    updated: int


class InteractionIn(BaseModel):
    contact_ids: list[str] = Field(default_factory=list)
    type: InteractionTypeIn
    occurred_at: datetime | None = None
    direction: DirectionIn = "na"
    subject: str | None = None
    summary: str | None = None
    source: str = "manual"
    external_id: str | None = None
    sentiment: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class InteractionOut(BaseModel):
    interaction_id: str
    type: str
    direction: str
    occurred_at: datetime
    subject: str | None = None
    source: str
    external_id: str | None = None
    contact_ids: list[str] = Field(default_factory=list)


class NoteIn(BaseModel):
    content: str
    is_pinned: bool = False
    occurred_at: datetime | None = None


class NoteOut(BaseModel):
    note_id: str
    contact_id: str
    content: str
    is_pinned: bool
    occurred_at: datetime


class SocialMessageIn(BaseModel):
    channel: SocialChannelIn
    title: str
    body: str | None = None
    direction: DirectionIn = "na"
    occurred_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SocialMessageOut(BaseModel):
    message_id: str
    contact_id: str
    channel: str
    title: str
    direction: str
    occurred_at: datetime


class FollowUpOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    contact_id: str
    display_name: str
    email: str | None = None
    company: str | None = None
    last_contact_date: datetime | None = None
    contact_frequency_days: int
    due_date: datetime
    snoozed_until: datetime | None = None
    effective_due_date: datetime
    is_past_due: bool
    days_overdue: int
    overdue_indicator: Literal["none", "attention", "warning", "critical"]
    relationship_strength: float
    relationship_label: str


class FollowUpDoneIn(BaseModel):
    date: datetime | None = None


class SnoozeIn(BaseModel):
    days: int


class RecommendationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    recommendation_id: str
    contact_id: str
    contact_name: str
    contact_email: str | None = None
    contact_company: str | None = None
    trigger_type: TriggerType
    reason: str
    urgency_score: float
    state: RecommendationState
    snoozed_until: datetime | None = None
    is_helpful: bool | None = None
    detected_at: datetime
    created_at: datetime


class FeedbackIn(BaseModel):
    is_helpful: bool


class TimelineEventOut(BaseModel):
    id: str
    type: TimelineEventType
    occurred_at: datetime
    title: str
    snippet: str | None = None
    direction: str | None = None
    source: str
    contact_ids: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TimelineResponse(BaseModel):
    data: list[TimelineEventOut] = Field(default_factory=list)
    total: int
    next_cursor: str | None = None
    has_more: bool


class StatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_contacts: int
    contacts_change: float
    new_this_week: int
    new_this_week_change: float
    due_today: int
    overdue: int
    active_recommendations: int
    snoozed_recommendations: int
    interactions_last_30_days: int
    average_strength: float | None = None


class SignalIn(BaseModel):
    contact_id: str
    signal_type: SignalTypeIn
    external_ref: str
    severity: float = 0.5
    summary: str | None = None
    detected_at: datetime | None = None


class SignalOut(BaseModel):
    signal_id: str
    contact_id: str
    signal_type: str
    created: bool


class SweepResponse(BaseModel):
    job_id: str
    status: str
