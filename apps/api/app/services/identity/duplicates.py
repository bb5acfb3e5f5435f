from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.context import RequestContext, as_utc
from app.core.errors import ValidationError
from app.core.types import DuplicateCategory
from app.core.validation import EmailFormat, PhoneFormat, StrLength, ensure_valid
from app.db.pg.models import Contact
from app.db.pg.queries import live_contacts
from app.services.identity.normalize import (
    email_parts,
    name_key,
    normalize_email,
    normalize_phone,
    phone_suffix,
)

logger = logging.getLogger(__name__)

DUPLICATE_QUERY_RULES = {
    "email": EmailFormat(),
    "phone": PhoneFormat(),
    "first_name": StrLength(maximum=120),
    "last_name": StrLength(maximum=120),
}

# A field counts as "matched" once its similarity reaches this level.
_FIELD_MATCH_LEVEL = 0.8


@dataclass(frozen=True)
class DuplicateQuery:
    email: str | None = None
    phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    @classmethod
    def from_raw(
        cls,
        email: str | None = None,
        phone: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> DuplicateQuery:
        return cls(
            email=normalize_email(email),
            phone=normalize_phone(phone),
            first_name=(first_name or "").strip() or None,
            last_name=(last_name or "").strip() or None,
        )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in [self.first_name, self.last_name] if part).lower()

    @property
    def is_empty(self) -> bool:
        return not (self.email or self.phone or self.first_name or self.last_name)


@dataclass
class DuplicateCandidate:
    contact_id: str
    display_name: str
    email: str | None
    phone: str | None
    score: float
    category: DuplicateCategory
    matched_fields: list[str]
    updated_at: datetime


@dataclass
class DuplicateCheckResult:
    matches: list[DuplicateCandidate] = field(default_factory=list)

    @property
    def is_duplicate(self) -> bool:
        return any(match.category in (DuplicateCategory.EXACT, DuplicateCategory.FUZZY) for match in self.matches)


def name_similarity(left: str, right: str) -> float:
    return fuzz.token_sort_ratio(left, right) / 100.0


def email_similarity(left: str, right: str) -> float:
    left_local, left_domain = email_parts(left)
    right_local, right_domain = email_parts(right)
    local = Levenshtein.normalized_similarity(left_local, right_local)
    if left_domain and left_domain == right_domain:
        domain = 1.0
    else:
        domain = Levenshtein.normalized_similarity(left_domain, right_domain)
    return 0.7 * local + 0.3 * domain


def phone_similarity(left: str, right: str, suffix_len: int) -> float:
    return Levenshtein.normalized_similarity(phone_suffix(left, suffix_len), phone_suffix(right, suffix_len))


def score_candidate(
    query: DuplicateQuery, contact: Contact, settings: Settings
) -> tuple[float, list[str], list[str]] | None:
    """Returns `(score, matched fields, compared fields)`, or None when the two share no comparable field."""
    weighted: list[tuple[float, float, str]] = []
    query_name = query.full_name
    contact_name = contact.display_name.lower()
    if query_name and contact_name:
        weighted.append((settings.duplicate_weight_name, name_similarity(query_name, contact_name), "name"))
    if query.email and contact.normalized_email:
        email_score = email_similarity(query.email, contact.normalized_email)
        weighted.append((settings.duplicate_weight_email, email_score, "email"))
    if query.phone and contact.normalized_phone:
        weighted.append(
            (
                settings.duplicate_weight_phone,
                phone_similarity(query.phone, contact.normalized_phone, settings.duplicate_phone_suffix_len),
                "phone",
            )
        )

    total_weight = sum(weight for weight, _, _ in weighted)
    if total_weight <= 0:
        return None
    score = sum(weight * similarity for weight, similarity, _ in weighted) / total_weight
    matched = [name for _, similarity, name in weighted if similarity >= _FIELD_MATCH_LEVEL]
    compared = [name for _, _, name in weighted]
    return max(0.0, min(1.0, score)), matched, compared


def classify(score: float, settings: Settings) -> DuplicateCategory | None:
    if score >= settings.duplicate_fuzzy_threshold:
        return DuplicateCategory.FUZZY
    if score >= settings.duplicate_potential_threshold:
        return DuplicateCategory.POTENTIAL
    return None


def _candidate(contact: Contact, score: float, category: DuplicateCategory, matched: list[str]) -> DuplicateCandidate:
    return DuplicateCandidate(
        contact_id=contact.contact_id,
        display_name=contact.display_name,
        email=contact.normalized_email,
        phone=contact.normalized_phone,
        score=round(score, 4),
        category=category,
        matched_fields=matched,
        updated_at=as_utc(contact.updated_at),
    )


def _rank(candidates: list[DuplicateCandidate]) -> list[DuplicateCandidate]:
    return sorted(candidates, key=lambda item: (-item.score, -item.updated_at.timestamp(), item.contact_id))


def find_exact_matches(db: Session, owner_id: str, query: DuplicateQuery) -> list[DuplicateCandidate]:
    conditions = []
    if query.email:
        conditions.append(Contact.normalized_email == query.email)
    if query.phone:
        conditions.append(Contact.normalized_phone == query.phone)
    if not conditions:
        return []

    matches: list[DuplicateCandidate] = []
    for contact in db.scalars(live_contacts(owner_id).where(or_(*conditions))).all():
        matched = []
        if query.email and contact.normalized_email == query.email:
            matched.append("email")
        if query.phone and contact.normalized_phone == query.phone:
            matched.append("phone")
        matches.append(_candidate(contact, 1.0, DuplicateCategory.EXACT, matched))
    return _rank(matches)


def blocking_candidates(db: Session, owner_id: str, query: DuplicateQuery, settings: Settings) -> list[Contact]:
    conditions = []
    key = name_key(query.first_name, query.last_name, settings.duplicate_blocking_prefix_len)
    _, domain = email_parts(query.email)
    if key:
        conditions.append(Contact.blocking_key.like(f"{key}|%"))
    if domain:
        conditions.append(Contact.blocking_key.like(f"%|{domain}"))
    suffix = phone_suffix(query.phone, settings.duplicate_phone_suffix_len)
    if suffix:
        conditions.append(Contact.normalized_phone.like(f"%{suffix}"))
    if not conditions:
        return []

    stmt = (
        live_contacts(owner_id)
        .where(or_(*conditions))
        .order_by(Contact.updated_at.desc())
        .limit(settings.duplicate_max_candidates)
    )
    return list(db.scalars(stmt).all())


def find_duplicates(
    db: Session,
    owner_id: str,
    query: DuplicateQuery,
    settings: Settings | None = None,
) -> DuplicateCheckResult:
    settings = settings or get_settings()
    exact = find_exact_matches(db, owner_id, query)
    if exact:
        return DuplicateCheckResult(matches=exact)

    scored: list[DuplicateCandidate] = []
    candidates = blocking_candidates(db, owner_id, query, settings)
    for contact in candidates:
        result = score_candidate(query, contact, settings)
        if result is None:
            continue
        score, matched, compared = result
        category = classify(score, settings)
        if category is DuplicateCategory.FUZZY and compared == ["name"]:
            # A name with no email or phone to compare caps at potential.
            category = DuplicateCategory.POTENTIAL
        if category is None:
            continue
        scored.append(_candidate(contact, score, category, matched))

    logger.debug(
        "duplicate_check_scored",
        extra={"owner_id": owner_id, "candidates": len(candidates), "reported": len(scored)},
    )
    return DuplicateCheckResult(matches=_rank(scored))


def check_duplicate(
    ctx: RequestContext,
    *,
    email: str | None = None,
    phone: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    settings: Settings | None = None,
) -> DuplicateCheckResult:
    values = {"email": email, "phone": phone, "first_name": first_name, "last_name": last_name}
    ensure_valid(values, DUPLICATE_QUERY_RULES, "Invalid duplicate check")
    query = DuplicateQuery.from_raw(email=email, phone=phone, first_name=first_name, last_name=last_name)
    if query.is_empty:
        raise ValidationError("Provide an email, phone or name to check")
    return find_duplicates(ctx.db, ctx.owner_id, query, settings)
