from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.pg.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Contact(Base):
    __tablename__ = "contacts"
    __table_args__ = (
        CheckConstraint("relationship_strength >= 1 AND relationship_strength <= 10", name="ck_contacts_strength"),
        CheckConstraint("contact_frequency_days >= 1", name="ck_contacts_frequency"),
    )

    contact_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    normalized_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    normalized_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tags_json: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    blocking_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    relationship_strength: Mapped[float] = mapped_column(Float, nullable=False, default=5.0)
    last_contact_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    contact_frequency_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    followup_snoozed_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @property
    def display_name(self) -> str:
        return " ".join(part for part in [self.first_name, self.last_name or ""] if part).strip()

    @property
    def tags(self) -> list[str]:
        return list(self.tags_json or [])


class Interaction(Base):
    __tablename__ = "interactions"

    interaction_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    direction: Mapped[str] = mapped_column(String(16), nullable=False, default="na")
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="manual")
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sentiment: Mapped[float | None] = mapped_column(Float, nullable=True)
    metadata_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class InteractionParticipant(Base):
    __tablename__ = "interaction_participants"

    interaction_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("interactions.interaction_id"), primary_key=True
    )
    contact_id: Mapped[str] = mapped_column(String(36), ForeignKey("contacts.contact_id"), primary_key=True)


class Note(Base):
    __tablename__ = "notes"

    note_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    contact_id: Mapped[str] = mapped_column(String(36), ForeignKey("contacts.contact_id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class SocialMessage(Base):
    __tablename__ = "social_messages"

    message_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    contact_id: Mapped[str] = mapped_column(String(36), ForeignKey("contacts.contact_id"), nullable=False)
    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    direction: Mapped[str] = mapped_column(String(16), nullable=False, default="na")
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    metadata_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ContactSignal(Base):
    __tablename__ = "contact_signals"
    __table_args__ = (UniqueConstraint("contact_id", "signal_type", "external_ref", name="uq_contact_signals_ref"),)

    signal_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    contact_id: Mapped[str] = mapped_column(String(36), ForeignKey("contacts.contact_id"), nullable=False)
    signal_type: Mapped[str] = mapped_column(String(32), nullable=False)
    external_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    severity: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    summary: Mapped[str | None] = mapped_column(String(500), nullable=True)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Recommendation(Base):
    __tablename__ = "recommendations"

    recommendation_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    contact_id: Mapped[str] = mapped_column(String(36), ForeignKey("contacts.contact_id"), nullable=False)
    trigger_type: Mapped[str] = mapped_column(String(32), nullable=False)
    trigger_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    severity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    urgency_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    snoozed_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_helpful: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    feedback_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


_OPEN_STATE_PREDICATE = text("state IN ('active', 'snoozed')")
_LIVE_CONTACT_PREDICATE = text("deleted_at IS NULL")
_EXTERNAL_INTERACTION_PREDICATE = text("external_id IS NOT NULL AND deleted_at IS NULL")

Index(
    "uq_contacts_owner_email",
    Contact.owner_id,
    Contact.normalized_email,
    unique=True,
    postgresql_where=_LIVE_CONTACT_PREDICATE,
    sqlite_where=_LIVE_CONTACT_PREDICATE,
)
Index(
    "uq_contacts_owner_phone",
    Contact.owner_id,
    Contact.normalized_phone,
    unique=True,
    postgresql_where=_LIVE_CONTACT_PREDICATE,
    sqlite_where=_LIVE_CONTACT_PREDICATE,
)

Index("ix_contacts_owner_blocking", Contact.owner_id, Contact.blocking_key)
Index("ix_contacts_owner_deleted", Contact.owner_id, Contact.deleted_at)
Index("ix_interactions_owner_occurred", Interaction.owner_id, Interaction.occurred_at, Interaction.interaction_id)
Index(
    "uq_interactions_owner_external",
    Interaction.owner_id,
    Interaction.source,
    Interaction.external_id,
    unique=True,
    postgresql_where=_EXTERNAL_INTERACTION_PREDICATE,
    sqlite_where=_EXTERNAL_INTERACTION_PREDICATE,
)
Index("ix_interaction_participants_contact", InteractionParticipant.contact_id)
Index("ix_notes_contact_occurred", Note.contact_id, Note.occurred_at)
Index("ix_social_messages_contact_occurred", SocialMessage.contact_id, SocialMessage.occurred_at)
Index("ix_recommendations_owner_state", Recommendation.owner_id, Recommendation.state)
Index(
    "uq_recommendations_open_key",
    Recommendation.contact_id,
    Recommendation.trigger_type,
    unique=True,
    postgresql_where=_OPEN_STATE_PREDICATE,
    sqlite_where=_OPEN_STATE_PREDICATE,
)
