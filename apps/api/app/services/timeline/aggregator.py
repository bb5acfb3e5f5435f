from __future__ import annotations

import base64
import binascii
import heapq
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from itertools import islice

from app.core.config import Settings, get_settings
from app.core.context import RequestContext, as_utc
from app.core.errors import ValidationError
from app.core.types import TimelineEventType
from app.core.validation import EachOneOf, IntRange, StrLength, ensure_valid
from app.db.pg.queries import get_owned_contact
from app.services.timeline.sources import SourceQuery, TimelineEvent, TimelineSource, default_sources

logger = logging.getLogger(__name__)

TIMELINE_QUERY_RULES = {
    "limit": IntRange(minimum=1, maximum=100, required=True),
    "types": EachOneOf(frozenset(item.value for item in TimelineEventType)),
    "search": StrLength(minimum=1, maximum=200),
    "cursor": StrLength(minimum=1, maximum=512),
}

_MALFORMED_CURSOR = [{"field": "cursor", "error": "is malformed"}]


@dataclass
class TimelinePage:
    data: list[TimelineEvent]
    total: int
    next_cursor: str | None
    has_more: bool


def encode_cursor(event: TimelineEvent) -> str:
    raw = f"{event.occurred_at.isoformat()}|{event.event_id}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        stamp, event_id = raw.split("|", 1)
        occurred_at = as_utc(datetime.fromisoformat(stamp))
    except (ValueError, UnicodeError, binascii.Error) as exc:
        raise ValidationError("Invalid timeline cursor", details=_MALFORMED_CURSOR) from exc
    if not event_id:
        raise ValidationError("Invalid timeline cursor", details=_MALFORMED_CURSOR)
    return occurred_at, event_id


def merge_events(sequences: Iterable[Sequence[TimelineEvent]], limit: int) -> list[TimelineEvent]:
    """K-way merge of per-source sequences already sorted by `(occurred_at, id)` descending."""
    merged = heapq.merge(*sequences, key=lambda event: event.sort_key, reverse=True)
    return list(islice(merged, limit))


def resolve_event_types(types: Iterable[str] | None) -> frozenset[TimelineEventType]:
    if not types:
        return frozenset(TimelineEventType)
    return frozenset(TimelineEventType(value) for value in types)


def aggregate(
    ctx: RequestContext,
    sources: Sequence[TimelineSource],
    *,
    event_types: frozenset[TimelineEventType],
    limit: int,
    search: str | None = None,
    cursor: tuple[datetime, str] | None = None,
    contact_id: str | None = None,
) -> TimelinePage:
    fetches: list[list[TimelineEvent]] = []
    total = 0
    for source in sources:
        wanted = source.event_types & event_types
        if not wanted:
            continue
        query = SourceQuery(
            owner_id=ctx.owner_id,
            event_types=wanted,
            limit=limit + 1,
            search=search,
            contact_id=contact_id,
            before=cursor,
        )
        fetches.append(source.fetch(ctx.db, query))
        total += source.approximate_count(ctx.db, query)

    window = merge_events(fetches, limit + 1)
    has_more = len(window) > limit
    page = window[:limit]
    return TimelinePage(
        data=page,
        total=total,
        next_cursor=encode_cursor(page[-1]) if has_more else None,
        has_more=has_more,
    )


def get_timeline(
    ctx: RequestContext,
    *,
    types: list[str] | None = None,
    search: str | None = None,
    cursor: str | None = None,
    limit: int | None = None,
    contact_id: str | None = None,
    sources: Sequence[TimelineSource] | None = None,
    settings: Settings | None = None,
) -> TimelinePage:
    settings = settings or get_settings()
    resolved_limit = settings.timeline_default_limit if limit is None else limit
    ensure_valid(
        {"limit": resolved_limit, "types": types, "search": search, "cursor": cursor},
        TIMELINE_QUERY_RULES,
        "Invalid timeline query",
    )
    if resolved_limit > settings.timeline_max_limit:
        raise ValidationError(f"Invalid timeline query: limit must be <= {settings.timeline_max_limit}")
    boundary = decode_cursor(cursor) if cursor else None
    if contact_id is not None:
        get_owned_contact(ctx.db, ctx.owner_id, contact_id)

    page = aggregate(
        ctx,
        sources if sources is not None else default_sources(settings.timeline_note_snippet_chars),
        event_types=resolve_event_types(types),
        limit=resolved_limit,
        search=search.strip() if search else None,
        cursor=boundary,
        contact_id=contact_id,
    )
    logger.debug(
        "timeline_page_built",
        extra={"owner_id": ctx.owner_id, "returned": len(page.data), "has_more": page.has_more},
    )
    return page
