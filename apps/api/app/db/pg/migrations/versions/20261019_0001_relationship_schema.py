"""relationship intelligence schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

_LIVE = sa.text("deleted_at IS NULL")
_OPEN = sa.text("state IN ('active', 'snoozed')")
_EXTERNAL = sa.text("external_id IS NOT NULL AND deleted_at IS NULL")


def upgrade() -> None:
    op.create_table(
        "contacts",
        sa.Column("contact_id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("first_name", sa.String(length=120), nullable=False),
        sa.Column("last_name", sa.String(length=120), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("normalized_email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("normalized_phone", sa.String(length=20), nullable=True),
        sa.Column("company", sa.String(length=255), nullable=True),
        sa.Column("tags_json", sa.JSON(), nullable=False),
        sa.Column("blocking_key", sa.String(length=64), nullable=True),
        sa.Column("relationship_strength", sa.Float(), nullable=False),
        sa.Column("last_contact_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("contact_frequency_days", sa.Integer(), nullable=False),
        sa.Column("followup_snoozed_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("relationship_strength >= 1 AND relationship_strength <= 10", name="ck_contacts_strength"),
        sa.CheckConstraint("contact_frequency_days >= 1", name="ck_contacts_frequency"),
        sa.PrimaryKeyConstraint("contact_id"),
    )
    op.create_index(
        "uq_contacts_owner_email",
        "contacts",
        ["owner_id", "normalized_email"],
        unique=True,
        postgresql_where=_LIVE,
    )
    op.create_index(
        "uq_contacts_owner_phone",
        "contacts",
        ["owner_id", "normalized_phone"],
        unique=True,
        postgresql_where=_LIVE,
    )
    op.create_index("ix_contacts_owner_blocking", "contacts", ["owner_id", "blocking_key"])
    op.create_index("ix_contacts_owner_deleted", "contacts", ["owner_id", "deleted_at"])

    op.create_table(
        "interactions",
        sa.Column("interaction_id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("subject", sa.String(length=500), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.Column("sentiment", sa.Float(), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("interaction_id"),
    )
    op.create_index(
        "ix_interactions_owner_occurred",
        "interactions",
        ["owner_id", "occurred_at", "interaction_id"],
    )
    op.create_index(
        "uq_interactions_owner_external",
        "interactions",
        ["owner_id", "source", "external_id"],
        unique=True,
        postgresql_where=_EXTERNAL,
    )

    op.create_table(
        "interaction_participants",
        sa.Column("interaction_id", sa.String(length=36), nullable=False),
        sa.Column("contact_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["interaction_id"], ["interactions.interaction_id"]),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.contact_id"]),
        sa.PrimaryKeyConstraint("interaction_id", "contact_id"),
    )
    op.create_index("ix_interaction_participants_contact", "interaction_participants", ["contact_id"])

    op.create_table(
        "notes",
        sa.Column("note_id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("contact_id", sa.String(length=36), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_pinned", sa.Boolean(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.contact_id"]),
        sa.PrimaryKeyConstraint("note_id"),
    )
    op.create_index("ix_notes_contact_occurred", "notes", ["contact_id", "occurred_at"])

    op.create_table(
        "social_messages",
        sa.Column("message_id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("contact_id", sa.String(length=36), nullable=False),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.contact_id"]),
        sa.PrimaryKeyConstraint("message_id"),
    )
    op.create_index("ix_social_messages_contact_occurred", "social_messages", ["contact_id", "occurred_at"])

    op.create_table(
        "contact_signals",
        sa.Column("signal_id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("contact_id", sa.String(length=36), nullable=False),
        sa.Column("signal_type", sa.String(length=32), nullable=False),
        sa.Column("external_ref", sa.String(length=255), nullable=False),
        sa.Column("severity", sa.Float(), nullable=False),
        sa.Column("summary", sa.String(length=500), nullable=True),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.contact_id"]),
        sa.PrimaryKeyConstraint("signal_id"),
        sa.UniqueConstraint("contact_id", "signal_type", "external_ref", name="uq_contact_signals_ref"),
    )

    op.create_table(
        "recommendations",
        sa.Column("recommendation_id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("contact_id", sa.String(length=36), nullable=False),
        sa.Column("trigger_type", sa.String(length=32), nullable=False),
        sa.Column("trigger_ref", sa.String(length=255), nullable=False),
        sa.Column("reason", sa.String(length=500), nullable=False),
        sa.Column("severity", sa.Float(), nullable=False),
        sa.Column("urgency_score", sa.Float(), nullable=False),
        sa.Column("state", sa.String(length=16), nullable=False),
        sa.Column("snoozed_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_helpful", sa.Boolean(), nullable=True),
        sa.Column("feedback_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.contact_id"]),
        sa.PrimaryKeyConstraint("recommendation_id"),
    )
    op.create_index("ix_recommendations_owner_state", "recommendations", ["owner_id", "state"])
    op.create_index(
        "uq_recommendations_open_key",
        "recommendations",
        ["contact_id", "trigger_type"],
        unique=True,
        postgresql_where=_OPEN,
    )


def downgrade() -> None:
    op.drop_index("uq_recommendations_open_key", table_name="recommendations")
    op.drop_index("ix_recommendations_owner_state", table_name="recommendations")
    op.drop_table("recommendations")
    op.drop_table("contact_signals")
    op.drop_index("ix_social_messages_contact_occurred", table_name="social_messages")
    op.drop_table("social_messages")
    op.drop_index("ix_notes_contact_occurred", table_name="notes")
    op.drop_table("notes")
    op.drop_index("ix_interaction_participants_contact", table_name="interaction_participants")
    op.drop_table("interaction_participants")
    op.drop_index("uq_interactions_owner_external", table_name="interactions")
    op.drop_index("ix_interactions_owner_occurred", table_name="interactions")
    op.drop_table("interactions")
    op.drop_index("ix_contacts_owner_deleted", table_name="contacts")
    op.drop_index("ix_contacts_owner_blocking", table_name="contacts")
    op.drop_index("uq_contacts_owner_phone", table_name="contacts")
    op.drop_index("uq_contacts_owner_email", table_name="contacts")
    op.drop_table("contacts")
