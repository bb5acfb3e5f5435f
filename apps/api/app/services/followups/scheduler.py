from __future__ import annotations

import logging
from datetime import datetime, timedelta

from app.core.config import Settings, get_settings
from app.core.context import RequestContext, as_utc
from app.core.errors import ValidationError
from app.core.validation import IntRange, ensure_valid
from app.db.pg.models import Contact
from app.db.pg.queries import get_owned_contact, live_contacts
from app.services.followups.projection import FollowUp, pending_sort_key, project_followup
from app.services.recommendations.engine import refresh_contact_recommendations
from app.services.scoring.relationship_score import apply_boost

logger = logging.getLogger(__name__)

PENDING_QUERY_RULES = {"limit": IntRange(minimum=1, maximum=100, required=True)}
SNOOZE_RULES = {"days": IntRange(minimum=1, maximum=365, required=True)}


def clear_elapsed_snooze(contact: Contact, now: datetime) -> bool:
    if contact.followup_snoozed_until is None:
        return False
    if as_utc(contact.followup_snoozed_until) > now:
        return False
    contact.followup_snoozed_until = None
    return True


def get_pending_followups(
    ctx: RequestContext,
    *,
    limit: int = 20,
    include_overdue: bool = True,
    settings: Settings | None = None,
) -> list[FollowUp]:
    settings = settings or get_settings()
    ensure_valid({"limit": limit}, PENDING_QUERY_RULES, "Invalid follow-up query")

    contacts = ctx.db.scalars(live_contacts(ctx.owner_id)).all()
    cleared = 0
    followups: list[FollowUp] = []
    for contact in contacts:
        if clear_elapsed_snooze(contact, ctx.now):
            cleared += 1
        followup = project_followup(contact, ctx.now, settings)
        if followup.is_past_due and not include_overdue:
            continue
        followups.append(followup)
    if cleared:
        ctx.db.commit()
        logger.info("followup_snoozes_cleared", extra={"owner_id": ctx.owner_id, "cleared": cleared})

    followups.sort(key=pending_sort_key)
    return followups[:limit]


def get_followup(ctx: RequestContext, contact_id: str, settings: Settings | None = None) -> FollowUp:
    contact = get_owned_contact(ctx.db, ctx.owner_id, contact_id)
    if clear_elapsed_snooze(contact, ctx.now):
        ctx.db.commit()
    return project_followup(contact, ctx.now, settings)


def record_contact_touch(
    contact: Contact,
    touched_at: datetime,
    boost: float,
    settings: Settings | None = None,
) -> None:
    """Moves the cadence anchor forward and folds the boost into the stored raw strength."""
    settings = settings or get_settings()
    touched_at = as_utc(touched_at)
    contact.relationship_strength = apply_boost(
        contact.relationship_strength,
        contact.last_contact_date,
        contact.contact_frequency_days,
        boost,
        touched_at,
        settings,
    )
    if contact.last_contact_date is None or as_utc(contact.last_contact_date) < touched_at:
        contact.last_contact_date = touched_at


def mark_followup_done(
    ctx: RequestContext,
    contact_id: str,
    date: datetime | None = None,
    settings: Settings | None = None,
) -> FollowUp:
    settings = settings or get_settings()
    done_at = as_utc(date) if date is not None else ctx.now
    if done_at > ctx.now:
        raise ValidationError("Follow-up completion date cannot be in the future")

    contact = get_owned_contact(ctx.db, ctx.owner_id, contact_id, for_update=True)
    record_contact_touch(contact, done_at, settings.followup_completion_boost, settings)
    contact.followup_snoozed_until = None
    ctx.db.flush()
    refresh_contact_recommendations(ctx, contact, settings=settings)
    ctx.db.commit()
    logger.info("followup_done", extra={"contact_id": contact_id, "done_at": done_at.isoformat()})
    return project_followup(contact, ctx.now, settings)


def snooze_followup(
    ctx: RequestContext,
    contact_id: str,
    days: int,
    settings: Settings | None = None,
) -> FollowUp:
    settings = settings or get_settings()
    ensure_valid({"days": days}, SNOOZE_RULES, "Invalid snooze request")
    contact = get_owned_contact(ctx.db, ctx.owner_id, contact_id, for_update=True)
    contact.followup_snoozed_until = ctx.now + timedelta(days=days)
    ctx.db.flush()
    refresh_contact_recommendations(ctx, contact, settings=settings)
    ctx.db.commit()
    logger.info("followup_snoozed", extra={"contact_id": contact_id, "days": days})
    return project_followup(contact, ctx.now, settings)
