from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from app.core.config import Settings, get_settings
from app.core.context import RequestContext, as_utc
from app.core.errors import ValidationError
from app.core.types import RecommendationState
from app.core.validation import EmailFormat, FloatRange, IntRange, PhoneFormat, StrLength, ensure_valid
from app.db.pg.models import Contact, Recommendation
from app.db.pg.queries import get_owned_contact, insert_contact, live_contacts, open_recommendations
from app.services.followups.projection import FollowUp, project_followup
from app.services.identity.duplicates import DuplicateCandidate, DuplicateQuery, find_duplicates
from app.services.identity.normalize import blocking_key, normalize_email, normalize_phone
from app.services.recommendations.engine import refresh_contact_recommendations

logger = logging.getLogger(__name__)

CONTACT_RULES = {
    "first_name": StrLength(minimum=1, maximum=120, required=True),
    "last_name": StrLength(maximum=120),
    "email": EmailFormat(),
    "phone": PhoneFormat(),
    "company": StrLength(maximum=255),
    "contact_frequency_days": IntRange(minimum=1, maximum=3650),
    "relationship_strength": FloatRange(minimum=1.0, maximum=10.0),
}
CADENCE_RULES = {"contact_frequency_days": IntRange(minimum=1, maximum=3650, required=True)}
MAX_TAGS = 50
MAX_TAG_LENGTH = 64


@dataclass
class ContactDraft:
    first_name: str
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    tags: list[str] | None = None
    contact_frequency_days: int | None = None
    relationship_strength: float | None = None
    last_contact_date: datetime | None = None


@dataclass
class ContactView:
    contact: Contact
    followup: FollowUp
    duplicate_matches: list[DuplicateCandidate] = field(default_factory=list)


def normalize_tags(tags: list[str] | None) -> list[str]:
    cleaned: list[str] = []
    for tag in tags or []:
        if not isinstance(tag, str):
            raise ValidationError("Tags must be strings", details=[{"field": "tags", "error": "must be strings"}])
        value = tag.strip().lower()
        if not value or value in cleaned:
            continue
        if len(value) > MAX_TAG_LENGTH:
            raise ValidationError(
                f"Tags must be at most {MAX_TAG_LENGTH} characters",
                details=[{"field": "tags", "error": f"must be at most {MAX_TAG_LENGTH} characters"}],
            )
        cleaned.append(value)
    if len(cleaned) > MAX_TAGS:
        raise ValidationError(f"At most {MAX_TAGS} tags", details=[{"field": "tags", "error": "too many tags"}])
    return cleaned


def validate_draft(draft: ContactDraft) -> None:
    ensure_valid(
        {
            "first_name": draft.first_name,
            "last_name": draft.last_name,
            "email": draft.email,
            "phone": draft.phone,
            "company": draft.company,
            "contact_frequency_days": draft.contact_frequency_days,
            "relationship_strength": draft.relationship_strength,
        },
        CONTACT_RULES,
        "Invalid contact",
    )


def build_contact(ctx: RequestContext, draft: ContactDraft, settings: Settings | None = None) -> Contact:
    settings = settings or get_settings()
    validate_draft(draft)
    tags = normalize_tags(draft.tags)
    if draft.last_contact_date is not None and as_utc(draft.last_contact_date) > ctx.now:
        raise ValidationError("last_contact_date cannot be in the future")

    first_name = draft.first_name.strip()
    last_name = (draft.last_name or "").strip() or None
    normalized_email = normalize_email(draft.email)
    return Contact(
        owner_id=ctx.owner_id,
        first_name=first_name,
        last_name=last_name,
        email=(draft.email or "").strip() or None,
        normalized_email=normalized_email,
        phone=(draft.phone or "").strip() or None,
        normalized_phone=normalize_phone(draft.phone),
        company=(draft.company or "").strip() or None,
        tags_json=tags,
        blocking_key=blocking_key(first_name, last_name, normalized_email, settings.duplicate_blocking_prefix_len),
        relationship_strength=draft.relationship_strength or settings.strength_default,
        last_contact_date=as_utc(draft.last_contact_date) if draft.last_contact_date else None,
        contact_frequency_days=draft.contact_frequency_days or settings.default_contact_frequency_days,
        created_at=ctx.now,
        updated_at=ctx.now,
    )


def view_contact(ctx: RequestContext, contact: Contact, settings: Settings | None = None) -> ContactView:
    return ContactView(contact=contact, followup=project_followup(contact, ctx.now, settings))


def create_contact(ctx: RequestContext, draft: ContactDraft, settings: Settings | None = None) -> ContactView:
    """Inserts a contact and reports near matches alongside it.

    The duplicate check is advisory; the per-owner email/phone unique indexes turn a lost race into ConflictError.
    """
    settings = settings or get_settings()
    contact = build_contact(ctx, draft, settings)
    advisory = find_duplicates(
        ctx.db,
        ctx.owner_id,
        DuplicateQuery(
            email=contact.normalized_email,
            phone=contact.normalized_phone,
            first_name=contact.first_name,
            last_name=contact.last_name,
        ),
        settings,
    )
    contact = insert_contact(ctx.db, contact)
    refresh_contact_recommendations(ctx, contact, settings=settings)
    ctx.db.commit()
    logger.info(
        "contact_created",
        extra={"owner_id": ctx.owner_id, "contact_id": contact.contact_id, "near_matches": len(advisory.matches)},
    )
    view = view_contact(ctx, contact, settings)
    view.duplicate_matches = advisory.matches
    return view


def get_contact(ctx: RequestContext, contact_id: str, settings: Settings | None = None) -> ContactView:
    return view_contact(ctx, get_owned_contact(ctx.db, ctx.owner_id, contact_id), settings)


def soft_delete_contact(ctx: RequestContext, contact_id: str) -> None:
    contact = get_owned_contact(ctx.db, ctx.owner_id, contact_id, for_update=True)
    contact.deleted_at = ctx.now
    closed = 0
    stmt = open_recommendations(ctx.owner_id).where(Recommendation.contact_id == contact_id)
    for recommendation in ctx.db.scalars(stmt).all():
        recommendation.state = RecommendationState.EXPIRED.value
        recommendation.snoozed_until = None
        recommendation.closed_at = ctx.now
        closed += 1
    ctx.db.commit()
    logger.info("contact_deleted", extra={"contact_id": contact_id, "recommendations_expired": closed})


def set_contact_frequency(
    ctx: RequestContext,
    contact_id: str,
    contact_frequency_days: int,
    settings: Settings | None = None,
) -> ContactView:
    settings = settings or get_settings()
    ensure_valid({"contact_frequency_days": contact_frequency_days}, CADENCE_RULES, "Invalid cadence")
    contact = get_owned_contact(ctx.db, ctx.owner_id, contact_id, for_update=True)
    _apply_cadence(ctx, contact, contact_frequency_days, settings)
    ctx.db.commit()
    logger.info("contact_cadence_updated", extra={"contact_id": contact_id, "days": contact_frequency_days})
    return view_contact(ctx, contact, settings)


def bulk_set_frequency_by_tags(
    ctx: RequestContext,
    tags: list[str],
    contact_frequency_days: int,
    settings: Settings | None = None,
) -> int:
    settings = settings or get_settings()
    ensure_valid({"contact_frequency_days": contact_frequency_days}, CADENCE_RULES, "Invalid cadence")
    wanted = set(normalize_tags(tags))
    if not wanted:
        raise ValidationError("Provide at least one tag", details=[{"field": "tags", "error": "is required"}])

    # Tags live in a JSON column, so membership is checked here rather than in SQL.
    contacts = ctx.db.scalars(live_contacts(ctx.owner_id).order_by(Contact.contact_id).with_for_update()).all()
    updated = 0
    for contact in contacts:
        if wanted.isdisjoint(contact.tags):
            continue
        _apply_cadence(ctx, contact, contact_frequency_days, settings)
        updated += 1
    ctx.db.commit()
    logger.info(
        "contact_cadence_bulk_updated",
        extra={"owner_id": ctx.owner_id, "tags": sorted(wanted), "updated": updated},
    )
    return updated


def _apply_cadence(ctx: RequestContext, contact: Contact, days: int, settings: Settings) -> None:
    contact.contact_frequency_days = days
    contact.updated_at = ctx.now
    ctx.db.flush()
    refresh_contact_recommendations(ctx, contact, settings=settings)
