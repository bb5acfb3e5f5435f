from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.v1.deps import get_settings_dep
from app.api.v1.schemas import SweepResponse
from app.core.security import verify_webhook_secret, webhook_secret_header
from app.workers.queue import enqueue_job

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/sweep", response_model=SweepResponse)
def sweep(
    settings=Depends(get_settings_dep),
    x_webhook_secret: str | None = Depends(webhook_secret_header),
) -> SweepResponse:
    verify_webhook_secret(settings, x_webhook_secret)
    job_id = enqueue_job("sweep_all_owners")
    return SweepResponse(job_id=job_id, status="enqueued")
