from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.v1.deps import get_context, get_settings_dep
from app.api.v1.schemas import SignalIn, SignalOut
from app.core.context import RequestContext
from app.core.security import verify_webhook_secret, webhook_secret_header
from app.services.contacts_registry.activity import ingest_signal

router = APIRouter(tags=["signals"])


@router.post("/signals", response_model=SignalOut)
def receive_signal(
    payload: SignalIn,
    ctx: RequestContext = Depends(get_context),
    settings=Depends(get_settings_dep),
    x_webhook_secret: str | None = Depends(webhook_secret_header),
) -> SignalOut:
    verify_webhook_secret(settings, x_webhook_secret)
    signal, created = ingest_signal(
        ctx,
        payload.contact_id,
        signal_type=payload.signal_type,
        external_ref=payload.external_ref,
        severity=payload.severity,
        summary=payload.summary,
        detected_at=payload.detected_at,
        settings=settings,
    )
    return SignalOut(
        signal_id=signal.signal_id,
        contact_id=signal.contact_id,
        signal_type=signal.signal_type,
        created=created,
    )
