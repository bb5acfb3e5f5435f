from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.v1.deps import get_context
from app.api.v1.schemas import StatsOut
from app.core.context import RequestContext
from app.services.stats.dashboard import get_stats

router = APIRouter(tags=["stats"])


@router.get("/stats", response_model=StatsOut)
def stats(ctx: RequestContext = Depends(get_context)) -> StatsOut:
    return StatsOut.model_validate(get_stats(ctx))
