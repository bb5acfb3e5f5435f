from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select

from app.core.config import Settings, get_settings
from app.core.context import RequestContext, as_utc
from app.core.types import RecommendationState
from app.db.pg.models import Contact, Interaction, Recommendation
from app.db.pg.queries import live_contacts
from app.services.followups.projection import project_followup


@dataclass
class DashboardStats:
    total_contacts: int
    contacts_change: float
    new_this_week: int
    new_this_week_change: float
    due_today: int
    overdue: int
    active_recommendations: int
    snoozed_recommendations: int
    interactions_last_30_days: int
    average_strength: float | None


def percent_change(current: int, previous: int) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _recommendation_counts(ctx: RequestContext) -> dict[str, int]:
    rows = ctx.db.execute(
        select(Recommendation.state, Recommendation.snoozed_until, func.count())
        .join(Contact, Contact.contact_id == Recommendation.contact_id)
        .where(Recommendation.owner_id == ctx.owner_id, Contact.deleted_at.is_(None))
        .group_by(Recommendation.state, Recommendation.snoozed_until)
    ).all()
    counts: dict[str, int] = {}
    for state, snoozed_until, count in rows:
        # A snooze that has run out reads as active even before the next refresh rewrites it.
        if state == RecommendationState.SNOOZED.value and (
            snoozed_until is None or as_utc(snoozed_until) <= ctx.now
        ):
            state = RecommendationState.ACTIVE.value
        counts[state] = counts.get(state, 0) + int(count)
    return counts


def get_stats(ctx: RequestContext, settings: Settings | None = None) -> DashboardStats:
    settings = settings or get_settings()
    now = ctx.now
    last_week = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)
    today = _start_of_day(now)
    tomorrow = today + timedelta(days=1)

    contacts = ctx.db.scalars(live_contacts(ctx.owner_id)).all()
    total = len(contacts)
    total_last_week = 0
    new_this_week = 0
    new_last_week = 0
    due_today = 0
    overdue = 0
    strengths: list[float] = []
    for contact in contacts:
        created_at = as_utc(contact.created_at)
        if created_at <= last_week:
            total_last_week += 1
        if created_at >= last_week:
            new_this_week += 1
        elif created_at >= two_weeks_ago:
            new_last_week += 1

        followup = project_followup(contact, now, settings)
        if followup.effective_due_date < today:
            overdue += 1
        elif followup.effective_due_date < tomorrow:
            due_today += 1
        strengths.append(followup.relationship_strength)

    interactions = ctx.db.scalar(
        select(func.count())
        .select_from(Interaction)
        .where(
            Interaction.owner_id == ctx.owner_id,
            Interaction.deleted_at.is_(None),
            Interaction.occurred_at >= now - timedelta(days=30),
        )
    )
    by_state = _recommendation_counts(ctx)
    return DashboardStats(
        total_contacts=total,
        contacts_change=percent_change(total, total_last_week),
        new_this_week=new_this_week,
        new_this_week_change=percent_change(new_this_week, new_last_week),
        due_today=due_today,
        overdue=overdue,
        active_recommendations=by_state.get(RecommendationState.ACTIVE.value, 0),
        snoozed_recommendations=by_state.get(RecommendationState.SNOOZED.value, 0),
        interactions_last_30_days=int(interactions or 0),
        average_strength=round(sum(strengths) / len(strengths), 2) if strengths else None,
    )
