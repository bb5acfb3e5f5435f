from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import assert_never

from sqlalchemy import select

from app.core.config import Settings, get_settings
from app.core.context import RequestContext, as_utc
from app.core.errors import ValidationError
from app.core.types import Period, RecommendationState, TriggerType
from app.core.validation import IntRange, OneOf, ensure_valid
from app.db.pg.models import Contact, ContactSignal, Recommendation
from app.db.pg.queries import (
    get_owned_recommendation,
    insert_recommendation,
    live_contacts,
    recommendations_for_contact,
    unresolved_signals_for_contact,
)
from app.services.followups.projection import FollowUp, project_followup
from app.services.scoring.priority_score import compute_urgency_score
from app.services.scoring.relationship_score import SECONDS_PER_DAY

logger = logging.getLogger(__name__)

RECOMMENDATION_QUERY_RULES = {
    "period": OneOf(frozenset(period.value for period in Period), required=True),
    "limit": IntRange(minimum=1, maximum=100),
}
SNOOZE_RULES = {"days": IntRange(minimum=1, maximum=365, required=True)}


@dataclass(frozen=True)
class TriggerCandidate:
    trigger_type: TriggerType
    trigger_ref: str
    severity: float
    reason: str
    detected_at: datetime


@dataclass
class RecommendationView:
    recommendation_id: str
    contact_id: str
    contact_name: str
    contact_email: str | None
    contact_company: str | None
    trigger_type: TriggerType
    reason: str
    urgency_score: float
    state: RecommendationState
    snoozed_until: datetime | None
    is_helpful: bool | None
    detected_at: datetime
    created_at: datetime


def _overdue_trigger(followup: FollowUp) -> TriggerCandidate | None:
    if not followup.is_past_due:
        return None
    lateness = min(1.0, followup.days_overdue / followup.contact_frequency_days)
    return TriggerCandidate(
        trigger_type=TriggerType.OVERDUE,
        trigger_ref=f"due:{followup.due_date.isoformat()}",
        severity=0.5 + 0.5 * lateness,
        reason=f"Follow-up with {followup.display_name} is {followup.days_overdue} day(s) overdue",
        detected_at=followup.effective_due_date,
    )


def _signal_trigger(contact: Contact, signals: list[ContactSignal]) -> TriggerCandidate | None:
    last_contact = as_utc(contact.last_contact_date) if contact.last_contact_date else None
    # A signal is acted upon once the contact has been reached after it was detected.
    pending = [signal for signal in signals if last_contact is None or as_utc(signal.detected_at) > last_contact]
    if not pending:
        return None
    strongest = max(pending, key=lambda signal: (signal.severity, as_utc(signal.detected_at), signal.signal_id))
    label = strongest.signal_type.replace("_", " ")
    summary = f": {strongest.summary}" if strongest.summary else ""
    return TriggerCandidate(
        trigger_type=TriggerType.EXTERNAL_SIGNAL,
        trigger_ref=f"signal:{strongest.signal_id}",
        severity=max(0.0, min(1.0, strongest.severity)),
        reason=f"{contact.display_name} has a {label}{summary}",
        detected_at=as_utc(strongest.detected_at),
    )


def _general_trigger(contact: Contact, followup: FollowUp, settings: Settings) -> TriggerCandidate | None:
    if contact.last_contact_date is not None or followup.is_past_due:
        return None
    return TriggerCandidate(
        trigger_type=TriggerType.GENERAL,
        trigger_ref="never-contacted",
        severity=settings.general_trigger_severity,
        reason=f"You have not been in touch with {contact.display_name} yet",
        detected_at=as_utc(contact.created_at),
    )


def evaluate_triggers(
    contact: Contact,
    followup: FollowUp,
    signals: list[ContactSignal],
    settings: Settings | None = None,
) -> dict[TriggerType, TriggerCandidate]:
    settings = settings or get_settings()
    triggers: dict[TriggerType, TriggerCandidate] = {}
    for trigger_type in TriggerType:
        candidate: TriggerCandidate | None
        match trigger_type:
            case TriggerType.OVERDUE:
                candidate = _overdue_trigger(followup)
            case TriggerType.EXTERNAL_SIGNAL:
                candidate = _signal_trigger(contact, signals)
            case TriggerType.GENERAL:
                candidate = _general_trigger(contact, followup, settings)
            case _:
                assert_never(trigger_type)
        if candidate is not None:
            triggers[trigger_type] = candidate
    return triggers


def _reactivate_if_snooze_elapsed(recommendation: Recommendation, now: datetime) -> None:
    if recommendation.state != RecommendationState.SNOOZED.value:
        return
    if recommendation.snoozed_until is None or as_utc(recommendation.snoozed_until) <= now:
        recommendation.state = RecommendationState.ACTIVE.value
        recommendation.snoozed_until = None


def _score(
    recommendation: Recommendation,
    effective_strength: float,
    now: datetime,
    window_days: int,
    settings: Settings,
) -> None:
    age_days = (now - as_utc(recommendation.detected_at)).total_seconds() / SECONDS_PER_DAY
    urgency, _ = compute_urgency_score(
        recommendation.severity,
        effective_strength,
        age_days,
        window_days,
        settings,
    )
    recommendation.urgency_score = urgency


def refresh_contact_recommendations(
    ctx: RequestContext,
    contact: Contact,
    *,
    window_days: int = 1,
    settings: Settings | None = None,
) -> list[Recommendation]:
    """One generation pass for a contact: lazy snooze expiry, expiry of stale triggers, idempotent creation."""
    settings = settings or get_settings()
    db = ctx.db
    now = ctx.now
    followup = project_followup(contact, now, settings)
    signals = unresolved_signals_for_contact(db, contact.contact_id)
    triggers = evaluate_triggers(contact, followup, signals, settings)

    existing = recommendations_for_contact(db, contact.contact_id)
    # Dismissal is final for that trigger occurrence; expiry is not, the trigger may recur.
    dismissed_keys = {
        (rec.trigger_type, rec.trigger_ref)
        for rec in existing
        if rec.state == RecommendationState.DISMISSED.value
    }
    open_by_type: dict[str, Recommendation] = {}
    for rec in existing:
        if not RecommendationState(rec.state).is_open:
            continue
        _reactivate_if_snooze_elapsed(rec, now)
        trigger = triggers.get(TriggerType(rec.trigger_type))
        if trigger is None or trigger.trigger_ref != rec.trigger_ref:
            rec.state = RecommendationState.EXPIRED.value
            rec.snoozed_until = None
            rec.closed_at = now
            logger.info(
                "recommendation_expired",
                extra={"recommendation_id": rec.recommendation_id, "trigger_type": rec.trigger_type},
            )
            continue
        rec.severity = trigger.severity
        rec.reason = trigger.reason
        open_by_type[rec.trigger_type] = rec
    db.flush()

    for trigger_type, trigger in triggers.items():
        if trigger_type.value in open_by_type:
            continue
        if (trigger_type.value, trigger.trigger_ref) in dismissed_keys:
            continue
        recommendation = Recommendation(
            owner_id=contact.owner_id,
            contact_id=contact.contact_id,
            trigger_type=trigger_type.value,
            trigger_ref=trigger.trigger_ref,
            reason=trigger.reason,
            severity=trigger.severity,
            state=RecommendationState.ACTIVE.value,
            detected_at=trigger.detected_at,
            created_at=now,
        )
        _score(recommendation, followup.relationship_strength, now, window_days, settings)
        if insert_recommendation(db, recommendation):
            open_by_type[trigger_type.value] = recommendation
            logger.info(
                "recommendation_created",
                extra={"contact_id": contact.contact_id, "trigger_type": trigger_type.value},
            )

    for rec in open_by_type.values():
        _score(rec, followup.relationship_strength, now, window_days, settings)
    db.flush()
    return list(open_by_type.values())


def refresh_owner_recommendations(
    ctx: RequestContext,
    *,
    window_days: int = 1,
    settings: Settings | None = None,
) -> int:
    settings = settings or get_settings()
    contacts = ctx.db.scalars(live_contacts(ctx.owner_id)).all()
    for contact in contacts:
        refresh_contact_recommendations(ctx, contact, window_days=window_days, settings=settings)
    return len(contacts)


def _default_limit(period: Period, settings: Settings) -> int:
    match period:
        case Period.DAILY:
            return settings.recommendation_limit_daily
        case Period.WEEKLY:
            return settings.recommendation_limit_weekly
        case Period.MONTHLY:
            return settings.recommendation_limit_monthly
        case _:
            assert_never(period)


def _to_view(recommendation: Recommendation, contact: Contact) -> RecommendationView:
    return RecommendationView(
        recommendation_id=recommendation.recommendation_id,
        contact_id=contact.contact_id,
        contact_name=contact.display_name,
        contact_email=contact.normalized_email,
        contact_company=contact.company,
        trigger_type=TriggerType(recommendation.trigger_type),
        reason=recommendation.reason,
        urgency_score=recommendation.urgency_score,
        state=RecommendationState(recommendation.state),
        snoozed_until=as_utc(recommendation.snoozed_until) if recommendation.snoozed_until else None,
        is_helpful=recommendation.is_helpful,
        detected_at=as_utc(recommendation.detected_at),
        created_at=as_utc(recommendation.created_at),
    )


def get_recommendations(
    ctx: RequestContext,
    *,
    period: str = Period.DAILY.value,
    limit: int | None = None,
    settings: Settings | None = None,
) -> list[RecommendationView]:
    settings = settings or get_settings()
    ensure_valid({"period": period, "limit": limit}, RECOMMENDATION_QUERY_RULES, "Invalid recommendation query")
    resolved_period = Period(period)
    resolved_limit = limit or _default_limit(resolved_period, settings)

    refresh_owner_recommendations(ctx, window_days=resolved_period.days, settings=settings)
    ctx.db.commit()

    rows = ctx.db.execute(
        select(Recommendation, Contact)
        .join(Contact, Contact.contact_id == Recommendation.contact_id)
        .where(
            Recommendation.owner_id == ctx.owner_id,
            Recommendation.state == RecommendationState.ACTIVE.value,
            Contact.deleted_at.is_(None),
        )
        .order_by(
            Recommendation.urgency_score.desc(),
            Recommendation.detected_at.asc(),
            Recommendation.recommendation_id.asc(),
        )
        .limit(resolved_limit)
    ).all()
    return [_to_view(recommendation, contact) for recommendation, contact in rows]


def dismiss_recommendation(ctx: RequestContext, recommendation_id: str) -> None:
    recommendation = get_owned_recommendation(ctx.db, ctx.owner_id, recommendation_id)
    state = RecommendationState(recommendation.state)
    match state:
        case RecommendationState.ACTIVE | RecommendationState.SNOOZED:
            recommendation.state = RecommendationState.DISMISSED.value
            recommendation.snoozed_until = None
            recommendation.closed_at = ctx.now
        case RecommendationState.DISMISSED:
            return
        case RecommendationState.EXPIRED:
            raise ValidationError("Recommendation has expired and can no longer be dismissed")
        case _:
            assert_never(state)
    ctx.db.commit()
    logger.info("recommendation_dismissed", extra={"recommendation_id": recommendation_id})


def snooze_recommendation(ctx: RequestContext, recommendation_id: str, days: int) -> None:
    ensure_valid({"days": days}, SNOOZE_RULES, "Invalid snooze request")
    recommendation = get_owned_recommendation(ctx.db, ctx.owner_id, recommendation_id)
    _reactivate_if_snooze_elapsed(recommendation, ctx.now)
    state = RecommendationState(recommendation.state)
    match state:
        case RecommendationState.ACTIVE | RecommendationState.SNOOZED:
            recommendation.state = RecommendationState.SNOOZED.value
            recommendation.snoozed_until = ctx.now + timedelta(days=days)
        case RecommendationState.DISMISSED | RecommendationState.EXPIRED:
            raise ValidationError(f"Recommendation is {state.value} and cannot be snoozed")
        case _:
            assert_never(state)
    ctx.db.commit()
    logger.info("recommendation_snoozed", extra={"recommendation_id": recommendation_id, "days": days})


def feedback_recommendation(ctx: RequestContext, recommendation_id: str, is_helpful: bool) -> None:
    if not isinstance(is_helpful, bool):
        raise ValidationError("is_helpful must be a boolean")
    recommendation = get_owned_recommendation(ctx.db, ctx.owner_id, recommendation_id)
    recommendation.is_helpful = is_helpful
    recommendation.feedback_at = ctx.now
    ctx.db.commit()
