from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.config import Settings, get_settings
from app.core.context import RequestContext, as_utc
from app.core.errors import ValidationError
from app.core.types import Direction, SignalType, SocialChannel
from app.core.validation import FloatRange, OneOf, StrLength, ensure_valid
from app.db.pg.models import ContactSignal, Note, SocialMessage
from app.db.pg.queries import get_owned_contact
from app.services.recommendations.engine import refresh_contact_recommendations

logger = logging.getLogger(__name__)

NOTE_RULES = {"content": StrLength(minimum=1, maximum=20000, required=True)}
SOCIAL_MESSAGE_RULES = {
    "channel": OneOf(frozenset(item.value for item in SocialChannel), required=True),
    "title": StrLength(minimum=1, maximum=500, required=True),
    "body": StrLength(maximum=20000),
    "direction": OneOf(frozenset(item.value for item in Direction), required=True),
}
SIGNAL_RULES = {
    "signal_type": OneOf(frozenset(item.value for item in SignalType), required=True),
    "external_ref": StrLength(minimum=1, maximum=255, required=True),
    "severity": FloatRange(minimum=0.0, maximum=1.0, required=True),
    "summary": StrLength(maximum=500),
}


def _event_time(ctx: RequestContext, occurred_at: datetime | None) -> datetime:
    moment = as_utc(occurred_at) if occurred_at is not None else ctx.now
    if moment > ctx.now:
        raise ValidationError("Event time cannot be in the future")
    return moment


def add_note(
    ctx: RequestContext,
    contact_id: str,
    content: str,
    *,
    is_pinned: bool = False,
    occurred_at: datetime | None = None,
) -> Note:
    ensure_valid({"content": content}, NOTE_RULES, "Invalid note")
    contact = get_owned_contact(ctx.db, ctx.owner_id, contact_id)
    note = Note(
        owner_id=ctx.owner_id,
        contact_id=contact.contact_id,
        content=content.strip(),
        is_pinned=is_pinned,
        occurred_at=_event_time(ctx, occurred_at),
        updated_at=ctx.now,
    )
    ctx.db.add(note)
    ctx.db.commit()
    logger.info("note_added", extra={"contact_id": contact_id, "note_id": note.note_id})
    return note


def add_social_message(
    ctx: RequestContext,
    contact_id: str,
    *,
    channel: str,
    title: str,
    body: str | None = None,
    direction: str = Direction.NA.value,
    occurred_at: datetime | None = None,
    metadata: dict[str, Any] | None = None,
) -> SocialMessage:
    ensure_valid(
        {"channel": channel, "title": title, "body": body, "direction": direction},
        SOCIAL_MESSAGE_RULES,
        "Invalid social message",
    )
    contact = get_owned_contact(ctx.db, ctx.owner_id, contact_id)
    message = SocialMessage(
        owner_id=ctx.owner_id,
        contact_id=contact.contact_id,
        channel=channel,
        title=title.strip(),
        body=body,
        direction=direction,
        occurred_at=_event_time(ctx, occurred_at),
        metadata_json=metadata or {},
    )
    ctx.db.add(message)
    ctx.db.commit()
    logger.info("social_message_added", extra={"contact_id": contact_id, "channel": channel})
    return message


def ingest_signal(
    ctx: RequestContext,
    contact_id: str,
    *,
    signal_type: str,
    external_ref: str,
    severity: float,
    summary: str | None = None,
    detected_at: datetime | None = None,
    settings: Settings | None = None,
) -> tuple[ContactSignal, bool]:
    """Stores an enrichment signal once per `(contact, type, external_ref)`; returns `(signal, created)`."""
    settings = settings or get_settings()
    ensure_valid(
        {"signal_type": signal_type, "external_ref": external_ref, "severity": severity, "summary": summary},
        SIGNAL_RULES,
        "Invalid signal",
    )
    contact = get_owned_contact(ctx.db, ctx.owner_id, contact_id, for_update=True)
    lookup = select(ContactSignal).where(
        ContactSignal.contact_id == contact.contact_id,
        ContactSignal.signal_type == signal_type,
        ContactSignal.external_ref == external_ref,
    )
    existing = ctx.db.scalar(lookup)
    if existing is not None:
        return existing, False

    signal = ContactSignal(
        owner_id=ctx.owner_id,
        contact_id=contact.contact_id,
        signal_type=signal_type,
        external_ref=external_ref,
        severity=float(severity),
        summary=summary,
        detected_at=_event_time(ctx, detected_at),
    )
    try:
        with ctx.db.begin_nested():
            ctx.db.add(signal)
            ctx.db.flush()
    except IntegrityError:
        # Same delivery raced in through another worker.
        return ctx.db.scalars(lookup).one(), False

    refresh_contact_recommendations(ctx, contact, settings=settings)
    ctx.db.commit()
    logger.info(
        "contact_signal_ingested",
        extra={"contact_id": contact_id, "signal_type": signal_type, "severity": severity},
    )
    return signal, True
