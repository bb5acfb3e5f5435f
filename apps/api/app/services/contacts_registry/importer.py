from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.core.config import Settings, get_settings
from app.core.context import RequestContext
from app.core.errors import ConflictError, ValidationError
from app.db.pg.queries import insert_contact
from app.services.contacts_registry.registry import ContactDraft, build_contact
from app.services.identity.duplicates import DuplicateCandidate, DuplicateQuery, find_duplicates
from app.services.identity.normalize import normalize_email
from app.services.recommendations.engine import refresh_contact_recommendations

logger = logging.getLogger(__name__)

MAX_IMPORT_ROWS = 1000


@dataclass
class ImportRowOutcome:
    index: int
    status: str
    contact_id: str | None = None
    message: str | None = None
    matches: list[DuplicateCandidate] = field(default_factory=list)


@dataclass
class ImportSummary:
    rows: list[ImportRowOutcome]

    def count(self, status: str) -> int:
        return sum(1 for row in self.rows if row.status == status)


def _row_preference_key(draft: ContactDraft, original_index: int) -> tuple[int, int, int, int, int]:
    return (
        int(bool((draft.company or "").strip())),
        int(bool((draft.last_name or "").strip())),
        int(bool((draft.phone or "").strip())),
        len(draft.tags or []),
        original_index,  # prefer later rows when otherwise equivalent
    )


def dedupe_import_rows(drafts: list[ContactDraft]) -> tuple[list[tuple[int, ContactDraft]], dict[int, int]]:
    """Collapses rows sharing a normalized email to the most complete one.

    Returns the surviving `(index, draft)` pairs in input order and a map from each
    dropped row index to the index of the row that replaced it.
    """
    winners: dict[str, int] = {}
    passthrough: list[int] = []
    for idx, draft in enumerate(drafts):
        email = normalize_email(draft.email)
        if not email:
            passthrough.append(idx)
            continue
        current = winners.get(email)
        if current is None or _row_preference_key(draft, idx) >= _row_preference_key(drafts[current], current):
            winners[email] = idx

    kept = set(winners.values()) | set(passthrough)
    replaced_by: dict[int, int] = {}
    for idx, draft in enumerate(drafts):
        if idx in kept:
            continue
        replaced_by[idx] = winners[normalize_email(draft.email) or ""]
    if replaced_by:
        logger.warning(
            "contacts_import_duplicate_rows_deduped",
            extra={"input_rows": len(drafts), "dropped_rows": len(replaced_by)},
        )
    return [(idx, drafts[idx]) for idx in sorted(kept)], replaced_by


def import_contacts(
    ctx: RequestContext,
    drafts: list[ContactDraft],
    settings: Settings | None = None,
) -> ImportSummary:
    settings = settings or get_settings()
    if not drafts:
        raise ValidationError("Nothing to import", details=[{"field": "contacts", "error": "is required"}])
    if len(drafts) > MAX_IMPORT_ROWS:
        raise ValidationError(
            f"At most {MAX_IMPORT_ROWS} contacts per import",
            details=[{"field": "contacts", "error": f"must contain at most {MAX_IMPORT_ROWS} rows"}],
        )

    kept, replaced_by = dedupe_import_rows(drafts)
    outcomes: dict[int, ImportRowOutcome] = {
        idx: ImportRowOutcome(index=idx, status="duplicate", message=f"Same email as row {winner}")
        for idx, winner in replaced_by.items()
    }
    for idx, draft in kept:
        try:
            contact = build_contact(ctx, draft, settings)
        except ValidationError as exc:
            outcomes[idx] = ImportRowOutcome(index=idx, status="invalid", message=exc.message)
            continue

        query = DuplicateQuery(
            email=contact.normalized_email,
            phone=contact.normalized_phone,
            first_name=contact.first_name,
            last_name=contact.last_name,
        )
        check = find_duplicates(ctx.db, ctx.owner_id, query, settings)
        if check.is_duplicate:
            outcomes[idx] = ImportRowOutcome(
                index=idx,
                status="duplicate",
                contact_id=check.matches[0].contact_id,
                message="Matches an existing contact",
                matches=check.matches,
            )
            continue

        try:
            insert_contact(ctx.db, contact)
        except ConflictError as exc:
            outcomes[idx] = ImportRowOutcome(index=idx, status="conflict", message=exc.message)
            continue
        refresh_contact_recommendations(ctx, contact, settings=settings)
        outcomes[idx] = ImportRowOutcome(index=idx, status="created", contact_id=contact.contact_id)

    ctx.db.commit()
    summary = ImportSummary(rows=[outcomes[idx] for idx in sorted(outcomes)])
    logger.info(
        "contacts_imported",
        extra={
            "owner_id": ctx.owner_id,
            "created": summary.count("created"),
            "duplicate": summary.count("duplicate"),
            "conflict": summary.count("conflict"),
            "invalid": summary.count("invalid"),
        },
    )
    return summary
