from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.api.v1.deps import get_context
from app.api.v1.schemas import FollowUpDoneIn, FollowUpOut, SnoozeIn
from app.core.context import RequestContext
from app.services.followups.scheduler import (
    get_followup,
    get_pending_followups,
    mark_followup_done,
    snooze_followup,
)

router = APIRouter(prefix="/followups", tags=["followups"])


@router.get("", response_model=list[FollowUpOut])
def pending(
    limit: int = Query(default=20),
    include_overdue: bool = Query(default=True),
    ctx: RequestContext = Depends(get_context),
) -> list[FollowUpOut]:
    followups = get_pending_followups(ctx, limit=limit, include_overdue=include_overdue)
    return [FollowUpOut.model_validate(item) for item in followups]


@router.get("/{contact_id}", response_model=FollowUpOut)
def one(contact_id: str, ctx: RequestContext = Depends(get_context)) -> FollowUpOut:
    return FollowUpOut.model_validate(get_followup(ctx, contact_id))


@router.post("/{contact_id}/done", response_model=FollowUpOut)
def done(
    contact_id: str,
    payload: FollowUpDoneIn | None = None,
    ctx: RequestContext = Depends(get_context),
) -> FollowUpOut:
    followup = mark_followup_done(ctx, contact_id, payload.date if payload else None)
    return FollowUpOut.model_validate(followup)


@router.post("/{contact_id}/snooze", response_model=FollowUpOut)
def snooze(contact_id: str, payload: SnoozeIn, ctx: RequestContext = Depends(get_context)) -> FollowUpOut:
    return FollowUpOut.model_validate(snooze_followup(ctx, contact_id, payload.days))
