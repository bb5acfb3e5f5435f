from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.v1.deps import get_context
from app.api.v1.schemas import InteractionIn, InteractionOut
from app.core.context import RequestContext
from app.services.interactions.recorder import participant_ids, record_interaction, soft_delete_interaction

router = APIRouter(prefix="/interactions", tags=["interactions"])


@router.post("", response_model=InteractionOut, status_code=status.HTTP_201_CREATED)
def record(payload: InteractionIn, ctx: RequestContext = Depends(get_context)) -> InteractionOut:
    interaction = record_interaction(
        ctx,
        contact_ids=payload.contact_ids,
        interaction_type=payload.type,
        occurred_at=payload.occurred_at,
        direction=payload.direction,
        subject=payload.subject,
        summary=payload.summary,
        source=payload.source,
        external_id=payload.external_id,
        sentiment=payload.sentiment,
        metadata=payload.metadata,
    )
    return InteractionOut(
        interaction_id=interaction.interaction_id,
        type=interaction.type,
        direction=interaction.direction,
        occurred_at=interaction.occurred_at,
        subject=interaction.subject,
        source=interaction.source,
        external_id=interaction.external_id,
        contact_ids=participant_ids(ctx, interaction.interaction_id),
    )


@router.delete("/{interaction_id}")
def delete(interaction_id: str, ctx: RequestContext = Depends(get_context)) -> dict:
    soft_delete_interaction(ctx, interaction_id)
    return {"interaction_id": interaction_id, "deleted": True}
