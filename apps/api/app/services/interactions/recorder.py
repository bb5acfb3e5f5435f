from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.config import Settings, get_settings
from app.core.context import RequestContext, as_utc
from app.core.errors import NotFoundError, ValidationError
from app.core.types import Direction, InteractionType
from app.core.validation import FloatRange, OneOf, StrLength, ensure_valid
from app.db.pg.models import Contact, Interaction, InteractionParticipant
from app.db.pg.queries import get_owned_interaction, live_contacts
from app.services.followups.scheduler import record_contact_touch
from app.services.recommendations.engine import refresh_contact_recommendations
from app.services.scoring.relationship_score import interaction_boost

logger = logging.getLogger(__name__)

INTERACTION_RULES = {
    "type": OneOf(frozenset(item.value for item in InteractionType), required=True),
    "direction": OneOf(frozenset(item.value for item in Direction), required=True),
    "subject": StrLength(maximum=500),
    "source": StrLength(minimum=1, maximum=32, required=True),
    "external_id": StrLength(minimum=1, maximum=255),
    "sentiment": FloatRange(minimum=-1.0, maximum=1.0),
}
MAX_PARTICIPANTS = 50


def _existing_external(ctx: RequestContext, source: str, external_id: str | None) -> Interaction | None:
    if not external_id:
        return None
    return ctx.db.scalar(
        select(Interaction).where(
            Interaction.owner_id == ctx.owner_id,
            Interaction.source == source,
            Interaction.external_id == external_id,
            Interaction.deleted_at.is_(None),
        )
    )


def _lock_participants(ctx: RequestContext, contact_ids: list[str]) -> list[Contact]:
    # Sorted lock order keeps concurrent multi-participant writes from deadlocking.
    wanted = sorted(set(contact_ids))
    contacts = ctx.db.scalars(
        live_contacts(ctx.owner_id)
        .where(Contact.contact_id.in_(wanted))
        .order_by(Contact.contact_id)
        .with_for_update()
    ).all()
    if len(contacts) != len(wanted):
        raise NotFoundError("Contact not found")
    return list(contacts)


def record_interaction(
    ctx: RequestContext,
    *,
    contact_ids: list[str],
    interaction_type: str,
    occurred_at: datetime | None = None,
    direction: str = Direction.NA.value,
    subject: str | None = None,
    summary: str | None = None,
    source: str = "manual",
    external_id: str | None = None,
    sentiment: float | None = None,
    metadata: dict[str, Any] | None = None,
    settings: Settings | None = None,
) -> Interaction:
    """Appends an interaction and cascades it into each participant's strength, cadence and recommendations."""
    settings = settings or get_settings()
    ensure_valid(
        {
            "type": interaction_type,
            "direction": direction,
            "subject": subject,
            "source": source,
            "external_id": external_id,
            "sentiment": sentiment,
        },
        INTERACTION_RULES,
        "Invalid interaction",
    )
    if not contact_ids:
        raise ValidationError(
            "Invalid interaction: contact_ids is required",
            details=[{"field": "contact_ids", "error": "is required"}],
        )
    if len(set(contact_ids)) > MAX_PARTICIPANTS:
        raise ValidationError(f"Invalid interaction: at most {MAX_PARTICIPANTS} participants")
    happened_at = as_utc(occurred_at) if occurred_at is not None else ctx.now
    if happened_at > ctx.now:
        raise ValidationError("Interaction cannot occur in the future")

    existing = _existing_external(ctx, source, external_id)
    if existing is not None:
        logger.info(
            "interaction_already_recorded",
            extra={"interaction_id": existing.interaction_id, "source": source, "external_id": external_id},
        )
        return existing

    contacts = _lock_participants(ctx, contact_ids)
    kind = InteractionType(interaction_type)
    interaction = Interaction(
        owner_id=ctx.owner_id,
        type=kind.value,
        direction=direction,
        occurred_at=happened_at,
        subject=subject.strip() if subject else None,
        summary=summary,
        source=source,
        external_id=external_id,
        sentiment=sentiment,
        metadata_json=metadata or {},
        created_at=ctx.now,
    )
    try:
        with ctx.db.begin_nested():
            ctx.db.add(interaction)
            ctx.db.flush()
    except IntegrityError:
        # Same provider message recorded by a concurrent delivery; its boost already landed.
        ctx.db.rollback()
        existing = _existing_external(ctx, source, external_id)
        if existing is None:
            raise
        logger.info(
            "interaction_already_recorded",
            extra={"interaction_id": existing.interaction_id, "source": source, "external_id": external_id},
        )
        return existing

    boost = interaction_boost(kind, settings)
    for contact in contacts:
        ctx.db.add(InteractionParticipant(interaction_id=interaction.interaction_id, contact_id=contact.contact_id))
        record_contact_touch(contact, happened_at, boost, settings)
    ctx.db.flush()
    for contact in contacts:
        refresh_contact_recommendations(ctx, contact, settings=settings)
    ctx.db.commit()

    logger.info(
        "interaction_recorded",
        extra={
            "interaction_id": interaction.interaction_id,
            "type": kind.value,
            "participants": len(contacts),
        },
    )
    return interaction


def participant_ids(ctx: RequestContext, interaction_id: str) -> list[str]:
    return list(
        ctx.db.scalars(
            select(InteractionParticipant.contact_id)
            .where(InteractionParticipant.interaction_id == interaction_id)
            .order_by(InteractionParticipant.contact_id)
        ).all()
    )


def soft_delete_interaction(ctx: RequestContext, interaction_id: str) -> None:
    interaction = get_owned_interaction(ctx.db, ctx.owner_id, interaction_id)
    interaction.deleted_at = ctx.now
    ctx.db.commit()
    logger.info("interaction_deleted", extra={"interaction_id": interaction_id})
