from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.api.v1.deps import get_context
from app.api.v1.schemas import FeedbackIn, PeriodIn, RecommendationOut, SnoozeIn
from app.core.context import RequestContext
from app.services.recommendations.engine import (
    dismiss_recommendation,
    feedback_recommendation,
    get_recommendations,
    snooze_recommendation,
)

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


@router.get("", response_model=list[RecommendationOut])
def list_recommendations(
    period: PeriodIn = Query(default="daily"),
    limit: int | None = Query(default=None),
    ctx: RequestContext = Depends(get_context),
) -> list[RecommendationOut]:
    views = get_recommendations(ctx, period=period, limit=limit)
    return [RecommendationOut.model_validate(view) for view in views]


@router.post("/{recommendation_id}/dismiss")
def dismiss(recommendation_id: str, ctx: RequestContext = Depends(get_context)) -> dict:
    dismiss_recommendation(ctx, recommendation_id)
    return {"recommendation_id": recommendation_id, "status": "dismissed"}


@router.post("/{recommendation_id}/snooze")
def snooze(recommendation_id: str, payload: SnoozeIn, ctx: RequestContext = Depends(get_context)) -> dict:
    snooze_recommendation(ctx, recommendation_id, payload.days)
    return {"recommendation_id": recommendation_id, "status": "snoozed", "days": payload.days}


@router.post("/{recommendation_id}/feedback")
def feedback(recommendation_id: str, payload: FeedbackIn, ctx: RequestContext = Depends(get_context)) -> dict:
    feedback_recommendation(ctx, recommendation_id, payload.is_helpful)
    return {"recommendation_id": recommendation_id, "is_helpful": payload.is_helpful}
