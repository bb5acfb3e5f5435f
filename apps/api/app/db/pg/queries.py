"""Store-layer reads and writes shared by the services.

Every read helper here is owner-scoped and excludes soft-deleted rows unless it says
otherwise; callers rely on that instead of repeating the filters.
"""

from __future__ import annotations

import logging

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError
from app.core.types import OPEN_RECOMMENDATION_STATES
from app.db.pg.models import Contact, ContactSignal, Interaction, Recommendation

logger = logging.getLogger(__name__)


def live_contacts(owner_id: str) -> Select:
    return select(Contact).where(Contact.owner_id == owner_id, Contact.deleted_at.is_(None))


def get_owned_contact(db: Session, owner_id: str, contact_id: str, *, for_update: bool = False) -> Contact:
    stmt = live_contacts(owner_id).where(Contact.contact_id == contact_id)
    if for_update:
        stmt = stmt.with_for_update()
    contact = db.scalar(stmt)
    if contact is None:
        raise NotFoundError("Contact not found")
    return contact


def insert_contact(db: Session, contact: Contact) -> Contact:
    try:
        with db.begin_nested():
            db.add(contact)
            db.flush()
    except IntegrityError as exc:
        logger.info(
            "contact_insert_conflict",
            extra={"owner_id": contact.owner_id, "normalized_email": contact.normalized_email},
        )
        raise ConflictError("Contact already exists with this email or phone") from exc
    return contact


def get_owned_interaction(db: Session, owner_id: str, interaction_id: str) -> Interaction:
    interaction = db.scalar(
        select(Interaction).where(
            Interaction.interaction_id == interaction_id,
            Interaction.owner_id == owner_id,
            Interaction.deleted_at.is_(None),
        )
    )
    if interaction is None:
        raise NotFoundError("Interaction not found")
    return interaction


def get_owned_recommendation(db: Session, owner_id: str, recommendation_id: str) -> Recommendation:
    recommendation = db.scalar(
        select(Recommendation)
        .join(Contact, Contact.contact_id == Recommendation.contact_id)
        .where(
            Recommendation.recommendation_id == recommendation_id,
            Recommendation.owner_id == owner_id,
            Contact.deleted_at.is_(None),
        )
    )
    if recommendation is None:
        raise NotFoundError("Recommendation not found")
    return recommendation


def recommendations_for_contact(db: Session, contact_id: str) -> list[Recommendation]:
    return list(db.scalars(select(Recommendation).where(Recommendation.contact_id == contact_id)).all())


def open_recommendations(owner_id: str) -> Select:
    return select(Recommendation).where(
        Recommendation.owner_id == owner_id,
        Recommendation.state.in_(OPEN_RECOMMENDATION_STATES),
    )


def insert_recommendation(db: Session, recommendation: Recommendation) -> bool:
    """Returns False when an open recommendation already holds the (contact, trigger) key."""
    try:
        with db.begin_nested():
            db.add(recommendation)
            db.flush()
    except IntegrityError:
        logger.info(
            "recommendation_already_open",
            extra={"contact_id": recommendation.contact_id, "trigger_type": recommendation.trigger_type},
        )
        return False
    return True


def unresolved_signals_for_contact(db: Session, contact_id: str) -> list[ContactSignal]:
    return list(
        db.scalars(
            select(ContactSignal)
            .where(ContactSignal.contact_id == contact_id, ContactSignal.resolved_at.is_(None))
            .order_by(ContactSignal.detected_at.desc())
        ).all()
    )
