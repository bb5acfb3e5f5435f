from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.core.config import Settings, get_settings
from app.core.context import as_utc
from app.db.pg.models import Contact
from app.services.scoring.relationship_score import (
    SECONDS_PER_DAY,
    compute_effective_strength,
    relationship_label,
)


@dataclass
class FollowUp:
    contact_id: str
    display_name: str
    email: str | None
    company: str | None
    last_contact_date: datetime | None
    contact_frequency_days: int
    due_date: datetime
    snoozed_until: datetime | None
    effective_due_date: datetime
    is_past_due: bool
    days_overdue: int
    overdue_indicator: str
    relationship_strength: float
    relationship_label: str


def overdue_indicator(days_overdue: int) -> str:
    if days_overdue <= 0:
        return "none"
    if days_overdue <= 7:
        return "attention"
    if days_overdue <= 14:
        return "warning"
    return "critical"


def base_date(contact: Contact) -> datetime:
    # Never-contacted people are due one cadence after they were added.
    if contact.last_contact_date is not None:
        return as_utc(contact.last_contact_date)
    return as_utc(contact.created_at)


def due_date(contact: Contact) -> datetime:
    return base_date(contact) + timedelta(days=contact.contact_frequency_days)


def active_snooze(contact: Contact, now: datetime) -> datetime | None:
    if contact.followup_snoozed_until is None:
        return None
    until = as_utc(contact.followup_snoozed_until)
    return until if until > as_utc(now) else None


def project_followup(contact: Contact, now: datetime, settings: Settings | None = None) -> FollowUp:
    settings = settings or get_settings()
    now = as_utc(now)
    due = due_date(contact)
    snoozed_until = active_snooze(contact, now)
    effective_due = snoozed_until or due
    is_past_due = now > effective_due
    days_overdue = 0
    if is_past_due:
        days_overdue = math.ceil((now - effective_due).total_seconds() / SECONDS_PER_DAY)

    strength = compute_effective_strength(
        contact.relationship_strength,
        contact.last_contact_date,
        contact.contact_frequency_days,
        now,
        settings,
    )
    return FollowUp(
        contact_id=contact.contact_id,
        display_name=contact.display_name,
        email=contact.normalized_email,
        company=contact.company,
        last_contact_date=as_utc(contact.last_contact_date) if contact.last_contact_date else None,
        contact_frequency_days=contact.contact_frequency_days,
        due_date=due,
        snoozed_until=snoozed_until,
        effective_due_date=effective_due,
        is_past_due=is_past_due,
        days_overdue=days_overdue,
        overdue_indicator=overdue_indicator(days_overdue),
        relationship_strength=round(strength.effective, 4),
        relationship_label=relationship_label(strength.effective),
    )


def pending_sort_key(followup: FollowUp) -> tuple[int, float, str]:
    return (0 if followup.is_past_due else 1, followup.effective_due_date.timestamp(), followup.contact_id)
