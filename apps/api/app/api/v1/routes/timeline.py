from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.api.v1.deps import get_context
from app.api.v1.schemas import TimelineEventOut, TimelineResponse
from app.core.context import RequestContext
from app.services.timeline.aggregator import TimelinePage, get_timeline

router = APIRouter(tags=["timeline"])


def _page_out(page: TimelinePage) -> TimelineResponse:
    return TimelineResponse(
        data=[
            TimelineEventOut(
                id=event.event_id,
                type=event.event_type,
                occurred_at=event.occurred_at,
                title=event.title,
                snippet=event.snippet,
                direction=event.direction,
                source=event.source,
                contact_ids=list(event.contact_ids),
                metadata=event.metadata,
            )
            for event in page.data
        ],
        total=page.total,
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )


@router.get("/timeline", response_model=TimelineResponse)
def owner_timeline(
    types: list[str] | None = Query(default=None),
    search: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    limit: int | None = Query(default=None),
    ctx: RequestContext = Depends(get_context),
) -> TimelineResponse:
    return _page_out(get_timeline(ctx, types=types, search=search or None, cursor=cursor or None, limit=limit))


@router.get("/contacts/{contact_id}/timeline", response_model=TimelineResponse)
def contact_timeline(
    contact_id: str,
    types: list[str] | None = Query(default=None),
    search: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    limit: int | None = Query(default=None),
    ctx: RequestContext = Depends(get_context),
) -> TimelineResponse:
    page = get_timeline(
        ctx,
        types=types,
        search=search or None,
        cursor=cursor or None,
        limit=limit,
        contact_id=contact_id,
    )
    return _page_out(page)
