from __future__ import annotations

from fastapi import Header, HTTPException, status

from app.core.config import Settings


def verify_webhook_secret(settings: Settings, secret_header: str | None) -> None:
    if not settings.enrichment_webhook_secret:
        return
    if not secret_header:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing webhook secret",
        )
    if secret_header != settings.enrichment_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )


def webhook_secret_header(x_webhook_secret: str | None = Header(default=None)) -> str | None:
    return x_webhook_secret


def require_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
    # The identity layer in front of this service resolves the session and forwards the owner.
    owner_id = (x_owner_id or "").strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing owner scope",
        )
    return owner_id
