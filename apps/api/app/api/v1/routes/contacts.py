from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.v1.deps import get_context
from app.api.v1.schemas import (
    BulkFrequencyIn,
    BulkFrequencyResponse,
    ContactImportIn,
    ContactImportResponse,
    ContactIn,
    ContactOut,
    DuplicateCheckIn,
    DuplicateCheckResponse,
    DuplicateMatchOut,
    FrequencyIn,
    ImportRowOut,
    NoteIn,
    NoteOut,
    SocialMessageIn,
    SocialMessageOut,
)
from app.core.context import RequestContext
from app.services.contacts_registry.activity import add_note, add_social_message
from app.services.contacts_registry.importer import import_contacts
from app.services.contacts_registry.registry import (
    ContactDraft,
    ContactView,
    bulk_set_frequency_by_tags,
    create_contact,
    get_contact,
    set_contact_frequency,
    soft_delete_contact,
)
from app.services.identity.duplicates import DuplicateCandidate, check_duplicate

router = APIRouter(prefix="/contacts", tags=["contacts"])


def _draft(payload: ContactIn) -> ContactDraft:
    return ContactDraft(**payload.model_dump())


def _contact_out(view: ContactView) -> ContactOut:
    contact = view.contact
    followup = view.followup
    return ContactOut(
        contact_id=contact.contact_id,
        first_name=contact.first_name,
        last_name=contact.last_name,
        display_name=contact.display_name,
        email=contact.normalized_email,
        phone=contact.phone,
        company=contact.company,
        tags=contact.tags,
        relationship_strength=followup.relationship_strength,
        raw_relationship_strength=contact.relationship_strength,
        relationship_label=followup.relationship_label,
        last_contact_date=followup.last_contact_date,
        contact_frequency_days=contact.contact_frequency_days,
        due_date=followup.due_date,
        is_past_due=followup.is_past_due,
        created_at=contact.created_at,
        updated_at=contact.updated_at,
        duplicate_matches=[match_out(candidate) for candidate in view.duplicate_matches],
    )


def match_out(candidate: DuplicateCandidate) -> DuplicateMatchOut:
    return DuplicateMatchOut(
        contact_id=candidate.contact_id,
        display_name=candidate.display_name,
        email=candidate.email,
        phone=candidate.phone,
        score=candidate.score,
        category=candidate.category,
        matched_fields=candidate.matched_fields,
    )


@router.post("", response_model=ContactOut, status_code=status.HTTP_201_CREATED)
def create(payload: ContactIn, ctx: RequestContext = Depends(get_context)) -> ContactOut:
    return _contact_out(create_contact(ctx, _draft(payload)))


@router.post("/check-duplicate", response_model=DuplicateCheckResponse)
def duplicate_check(payload: DuplicateCheckIn, ctx: RequestContext = Depends(get_context)) -> DuplicateCheckResponse:
    result = check_duplicate(
        ctx,
        email=payload.email,
        phone=payload.phone,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    return DuplicateCheckResponse(
        is_duplicate=result.is_duplicate,
        matches=[match_out(candidate) for candidate in result.matches],
    )


@router.post("/import", response_model=ContactImportResponse)
def bulk_import(payload: ContactImportIn, ctx: RequestContext = Depends(get_context)) -> ContactImportResponse:
    summary = import_contacts(ctx, [_draft(row) for row in payload.contacts])
    return ContactImportResponse(
        created=summary.count("created"),
        duplicate=summary.count("duplicate"),
        conflict=summary.count("conflict"),
        invalid=summary.count("invalid"),
        rows=[
            ImportRowOut(
                index=row.index,
                status=row.status,
                contact_id=row.contact_id,
                message=row.message,
                matches=[match_out(candidate) for candidate in row.matches],
            )
            for row in summary.rows
        ],
    )


@router.post("/frequency/bulk", response_model=BulkFrequencyResponse)
def bulk_frequency(payload: BulkFrequencyIn, ctx: RequestContext = Depends(get_context)) -> BulkFrequencyResponse:
    updated = bulk_set_frequency_by_tags(ctx, payload.tags, payload.contact_frequency_days)
    return BulkFrequencyResponse(updated=updated)


@router.get("/{contact_id}", response_model=ContactOut)
def read(contact_id: str, ctx: RequestContext = Depends(get_context)) -> ContactOut:
    return _contact_out(get_contact(ctx, contact_id))


@router.delete("/{contact_id}")
def delete(contact_id: str, ctx: RequestContext = Depends(get_context)) -> dict:
    soft_delete_contact(ctx, contact_id)
    return {"contact_id": contact_id, "deleted": True}


@router.put("/{contact_id}/frequency", response_model=ContactOut)
def update_frequency(contact_id: str, payload: FrequencyIn, ctx: RequestContext = Depends(get_context)) -> ContactOut:
    return _contact_out(set_contact_frequency(ctx, contact_id, payload.contact_frequency_days))


@router.post("/{contact_id}/notes", response_model=NoteOut, status_code=status.HTTP_201_CREATED)
def create_note(contact_id: str, payload: NoteIn, ctx: RequestContext = Depends(get_context)) -> NoteOut:
    note = add_note(ctx, contact_id, payload.content, is_pinned=payload.is_pinned, occurred_at=payload.occurred_at)
    return NoteOut(
        note_id=note.note_id,
        contact_id=note.contact_id,
        content=note.content,
        is_pinned=note.is_pinned,
        occurred_at=note.occurred_at,
    )


@router.post("/{contact_id}/social-messages", response_model=SocialMessageOut, status_code=status.HTTP_201_CREATED)
def create_social_message(
    contact_id: str,
    payload: SocialMessageIn,
    ctx: RequestContext = Depends(get_context),
) -> SocialMessageOut:
    message = add_social_message(
        ctx,
        contact_id,
        channel=payload.channel,
        title=payload.title,
        body=payload.body,
        direction=payload.direction,
        occurred_at=payload.occurred_at,
        metadata=payload.metadata,
    )
    return SocialMessageOut(
        message_id=message.message_id,
        contact_id=message.contact_id,
        channel=message.channel,
        title=message.title,
        direction=message.direction,
        occurred_at=message.occurred_at,
    )
